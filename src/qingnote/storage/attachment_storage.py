"""Attachment byte storage on the local filesystem.

Attachments move through two places:

1. ``staging/``: captured or picked content is copied here first, so an
   unsaved note (no id yet) can collect attachments.
2. ``attachments/<note_id>/<file>``: on note save the staged files are
   copied into the note's directory.

Rows in the attachments table are not kept transactionally consistent
with these files. ``scan_note_dir`` re-derives a note's attachment list
from what is actually on disk.
"""
import logging
import os
import random
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Union

from qingnote.config import config
from qingnote.models.schema import Attachment, AttachmentType, get_file_extension
from qingnote.utils import safe_filename

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

COPY_BUFFER_SIZE = 8192


def _unique_path(directory: Path, name: str) -> Path:
    """``directory/name``, suffixed ``_1``, ``_2``... while the name is taken."""
    candidate = directory / name
    if not candidate.exists():
        return candidate
    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while True:
        candidate = directory / f"{stem}_{counter}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


class AttachmentStorage:
    """Stages, commits, scans and removes attachment files.

    I/O failures are logged and reported as ``None``/``False``; nothing in
    here raises for a failed copy or delete.
    """

    def __init__(
        self,
        attachments_dir: Optional[PathLike] = None,
        staging_dir: Optional[PathLike] = None,
        avatars_dir: Optional[PathLike] = None,
    ):
        self.attachments_dir = Path(attachments_dir) if attachments_dir else config.get_attachments_dir()
        self.staging_dir = Path(staging_dir) if staging_dir else config.get_staging_dir()
        self.avatars_dir = Path(avatars_dir) if avatars_dir else config.get_avatars_dir()
        for directory in (self.attachments_dir, self.staging_dir, self.avatars_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def note_dir(self, note_id: int) -> Path:
        return self.attachments_dir / str(int(note_id))

    # -- staging ----------------------------------------------------------

    def stage_file(
        self,
        source: PathLike,
        type: Optional[AttachmentType] = None,
        name: Optional[str] = None,
    ) -> Optional[Attachment]:
        """Copy an existing file into staging and describe it."""
        source = Path(source)
        if not source.is_file():
            logger.warning(f"Cannot stage missing file: {source.name}")
            return None
        target = _unique_path(self.staging_dir, safe_filename(name or source.name))
        try:
            shutil.copyfile(source, target)
        except OSError as e:
            logger.error(f"Failed to stage {source.name}: {e}")
            return None
        return Attachment.from_file(target, type=type)

    def stage_stream(
        self,
        stream: Optional[BinaryIO],
        name: str,
        type: Optional[AttachmentType] = None,
    ) -> Optional[Attachment]:
        """Copy a readable byte stream (picker or content source) into staging."""
        if stream is None:
            logger.warning(f"No source stream for {name}")
            return None
        target = _unique_path(self.staging_dir, safe_filename(name))
        try:
            with open(target, "wb") as out:
                shutil.copyfileobj(stream, out, COPY_BUFFER_SIZE)
        except OSError as e:
            logger.error(f"Failed to stage stream as {target.name}: {e}")
            target.unlink(missing_ok=True)
            return None
        return Attachment.from_file(target, type=type)

    def stage_bytes(
        self,
        data: bytes,
        name: str,
        type: Optional[AttachmentType] = None,
    ) -> Optional[Attachment]:
        target = _unique_path(self.staging_dir, safe_filename(name))
        try:
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to stage {target.name}: {e}")
            return None
        return Attachment.from_file(target, type=type)

    def create_image_file(self, extension: str = "jpg") -> Optional[Path]:
        """Reserve an ``IMG_yyyyMMdd_HHmmss.<ext>`` file in staging for a capture."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = _unique_path(self.staging_dir, f"IMG_{stamp}.{extension.lstrip('.')}")
        try:
            target.touch(exist_ok=False)
        except OSError as e:
            logger.error(f"Failed to create image file: {e}")
            return None
        return target

    def create_audio_file(self) -> Optional[Path]:
        """Reserve an ``AUDIO_yyyyMMdd_HHmmss_<rand>.m4a`` file in staging for a recording."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        name = f"AUDIO_{stamp}_{random.randint(0, 999999999)}.m4a"
        target = _unique_path(self.staging_dir, name)
        try:
            target.touch(exist_ok=False)
        except OSError as e:
            logger.error(f"Failed to create audio file: {e}")
            return None
        return target

    def clear_staging(self) -> int:
        """Remove every staged file, returning how many were removed."""
        removed = 0
        for entry in self.staging_dir.iterdir():
            try:
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Could not remove staged {entry.name}: {e}")
        if removed:
            logger.info(f"Cleared {removed} staged attachments")
        return removed

    # -- commit / scan -----------------------------------------------------

    def commit(self, note_id: int, attachments: Iterable[Attachment]) -> List[Attachment]:
        """Copy attachments into ``attachments/<note_id>/`` once the note has an id.

        Attachments already inside the note directory are kept as they are;
        copies whose name is taken get a ``_1``, ``_2``... suffix.
        Sources that are URIs, missing, or fail to copy are skipped.

        Returns:
            Attachment metadata pointing at the committed files.
        """
        target_dir = self.note_dir(note_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        committed: List[Attachment] = []
        for attachment in attachments:
            if "://" in attachment.path:
                logger.warning(f"Skipping non-local attachment {attachment.name}")
                continue
            source = Path(attachment.path)
            if not source.is_file():
                logger.warning(f"Attachment source missing: {attachment.name}")
                continue
            if source.resolve().parent == target_dir.resolve():
                committed.append(attachment.model_copy(update={"note_id": note_id}))
                continue
            target = _unique_path(target_dir, safe_filename(attachment.name or source.name))
            try:
                shutil.copyfile(source, target)
            except OSError as e:
                logger.error(f"Failed to copy {attachment.name} into note {note_id}: {e}")
                continue
            committed.append(Attachment(
                id=attachment.id,
                note_id=note_id,
                name=target.name,
                path=str(target.resolve()),
                size=target.stat().st_size,
                type=attachment.type,
            ))
        logger.debug(f"Committed {len(committed)} attachments for note {note_id}")
        return committed

    def scan_note_dir(self, note_id: int) -> List[Attachment]:
        """Attachments of a note as found on disk, classified by extension."""
        directory = self.note_dir(note_id)
        if not directory.is_dir():
            return []
        return [
            Attachment.from_file(entry, note_id=note_id)
            for entry in sorted(directory.iterdir())
            if entry.is_file()
        ]

    # -- removal -----------------------------------------------------------

    def delete_file(self, attachment: Attachment) -> bool:
        """Delete the attachment's backing file if present.

        Returns False only when the file exists and could not be removed.
        """
        if not attachment.path or "://" in attachment.path:
            return True
        path = Path(attachment.path)
        if not path.exists():
            return True
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete attachment file {path.name}: {e}")
            return False
        logger.debug(f"Deleted attachment file {path.name}")
        return True

    def delete_note_dir(self, note_id: int) -> bool:
        """Remove a note's attachment directory, e.g. after the note was deleted."""
        directory = self.note_dir(note_id)
        if not directory.exists():
            return True
        try:
            shutil.rmtree(directory)
        except OSError as e:
            logger.error(f"Failed to remove attachments of note {note_id}: {e}")
            return False
        logger.info(f"Removed attachment directory of note {note_id}")
        return True

    # -- avatars -----------------------------------------------------------

    def store_avatar(self, source: Union[PathLike, BinaryIO]) -> Optional[str]:
        """Copy an avatar image into the avatars directory.

        Returns:
            Absolute path of the stored ``avatar_<uuid>.<ext>`` file, or None.
        """
        if source is None:
            return None
        if isinstance(source, (str, Path)):
            extension = (get_file_extension(str(source)) or "jpg").lower()
        else:
            extension = (get_file_extension(getattr(source, "name", "")) or "jpg").lower()
        target = self.avatars_dir / f"avatar_{uuid.uuid4()}.{extension}"
        try:
            if isinstance(source, (str, Path)):
                shutil.copyfile(source, target)
            else:
                with open(target, "wb") as out:
                    shutil.copyfileobj(source, out, COPY_BUFFER_SIZE)
        except OSError as e:
            logger.error(f"Failed to store avatar: {e}")
            if target.exists():
                os.remove(target)
            return None
        logger.info(f"Stored avatar {target.name}")
        return str(target.resolve())
