#!/usr/bin/env python
"""Seed a demo account with a batch of sample notes.

Useful for trying the paged listing and search by hand.

Usage:
    python scripts/create_sample.py
    python scripts/create_sample.py --count 45 --username demo --base-dir /tmp/qingnote
"""

import argparse
import random
from pathlib import Path

from qingnote.config import config
from qingnote.exceptions import RegistrationFailure
from qingnote.models.schema import Note, User
from qingnote.storage.database import get_database, reset_database
from qingnote.storage.note_repository import NoteRepository
from qingnote.storage.user_repository import UserRepository

TITLES = [
    "Shopping List", "Meeting notes", "Book ideas", "Travel plan",
    "Recipe", "Workout log", "Reading list", "Gift ideas",
]
WORDS = "milk eggs bread call email plan review draft notes trip budget idea".split()


def main():
    parser = argparse.ArgumentParser(description="Seed sample notes")
    parser.add_argument("--base-dir", default=None, help="QingNote base directory")
    parser.add_argument("--username", default="demo", help="Account to seed")
    parser.add_argument("--password", default="demo1234", help="Password for a new account")
    parser.add_argument("--count", type=int, default=45, help="Number of notes")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    if args.base_dir:
        config.base_dir = Path(args.base_dir)
    random.seed(args.seed)

    database = get_database()
    users = UserRepository(database)
    notes = NoteRepository(database)
    try:
        user = users.get_by_username(args.username)
        if user is None:
            result = users.register(User(
                username=args.username,
                email=f"{args.username}@example.com",
                password=args.password,
            ))
            if isinstance(result, RegistrationFailure):
                print(f"Could not create {args.username}: {result.message}")
                return
            user = users.get_by_id(result)
        print(f"Seeding {args.count} notes for {user.username} (id {user.id})")

        for i in range(args.count):
            title = f"{random.choice(TITLES)} #{i + 1}"
            content = " ".join(random.choice(WORDS) for _ in range(12))
            notes.insert(Note(title=title, content=content, user_id=user.id))
        notes.drain()
        print(f"Done: {len(notes.get_all_by_user(user.id).get())} notes total")
    finally:
        notes.close()
        users.close()
        reset_database()


if __name__ == "__main__":
    main()
