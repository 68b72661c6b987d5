"""
QingNote - the local data layer of a note-taking application.
This package implements user accounts, notes with attachments, local
persistence on an embedded SQLite database and a durable login session.

Mutations are serialized onto one background worker per repository and
read queries are exposed as live, auto-refreshing observables.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("qingnote")
except PackageNotFoundError:
    __version__ = "0.3.0"
