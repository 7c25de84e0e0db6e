"""Keyed persistence for decks, folders, cards and stats.

The store is an opaque ``read(key) / write(key, bytes)`` interface with
whole-collection, last-write-wins semantics. ``StudyRepository`` encodes
collections as JSON on top of it.
"""

import logging
from typing import Protocol

from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.models.store_entry import StoreEntry
from backend.srs.cards import Card, Deck, Folder, UserStats
from backend.srs.errors import DeckNotFound, FolderNotFound, PersistenceError
from backend.srs.outcome import SessionOutcome, count_learned

logger = logging.getLogger(__name__)

CARDS = "cards"
DECKS = "decks"
STATS = "stats"
FOLDERS = "folders"

_cards_adapter = TypeAdapter(list[Card])
_decks_adapter = TypeAdapter(list[Deck])
_folders_adapter = TypeAdapter(list[Folder])


def storage_key(user_id: str, kind: str) -> str:
    return f"user:{user_id}:{kind}"


class KeyValueStore(Protocol):
    async def read(self, key: str) -> bytes | None: ...

    async def write(self, key: str, data: bytes) -> None: ...


class InMemoryStore:
    """Dict-backed store, for tests and throwaway sessions."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}

    async def read(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def write(self, key: str, data: bytes) -> None:
        self.data[key] = data


class SQLStore:
    """Store backed by the ``store_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def read(self, key: str) -> bytes | None:
        async with self.session_factory() as db:
            entry = await db.get(StoreEntry, key)
            return entry.payload if entry else None

    async def write(self, key: str, data: bytes) -> None:
        async with self.session_factory() as db:
            entry = await db.get(StoreEntry, key)
            if entry is None:
                db.add(StoreEntry(key=key, payload=data))
            else:
                entry.payload = data
            await db.commit()


class StudyRepository:
    """Loads and saves a user's collections through a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def load_cards(self, user_id: str) -> list[Card]:
        raw = await self.store.read(storage_key(user_id, CARDS))
        return _cards_adapter.validate_json(raw) if raw else []

    async def load_deck_cards(self, user_id: str, deck_id: str) -> list[Card]:
        return [card for card in await self.load_cards(user_id) if card.deck_id == deck_id]

    async def load_decks(self, user_id: str) -> list[Deck]:
        raw = await self.store.read(storage_key(user_id, DECKS))
        return _decks_adapter.validate_json(raw) if raw else []

    async def load_stats(self, user_id: str) -> UserStats:
        raw = await self.store.read(storage_key(user_id, STATS))
        return UserStats.model_validate_json(raw) if raw else UserStats()

    async def save_cards(self, user_id: str, cards: list[Card]) -> None:
        await self.store.write(storage_key(user_id, CARDS), _cards_adapter.dump_json(cards))

    async def save_decks(self, user_id: str, decks: list[Deck]) -> None:
        await self.store.write(storage_key(user_id, DECKS), _decks_adapter.dump_json(decks))

    async def save_stats(self, user_id: str, stats: UserStats) -> None:
        await self.store.write(storage_key(user_id, STATS), stats.model_dump_json().encode())

    async def add_deck(self, user_id: str, deck: Deck, cards: list[Card]) -> None:
        """Append a new deck and its cards to the user's collections."""
        existing_cards = await self.load_cards(user_id)
        existing_decks = await self.load_decks(user_id)
        await self.save_cards(user_id, existing_cards + cards)
        await self.save_decks(user_id, existing_decks + [deck])
        logger.info("Added deck %s with %d cards for user %s", deck.id, len(cards), user_id)

    async def load_folders(self, user_id: str) -> list[Folder]:
        raw = await self.store.read(storage_key(user_id, FOLDERS))
        return _folders_adapter.validate_json(raw) if raw else []

    async def save_folders(self, user_id: str, folders: list[Folder]) -> None:
        await self.store.write(storage_key(user_id, FOLDERS), _folders_adapter.dump_json(folders))

    async def _load_deck(self, user_id: str, deck_id: str) -> tuple[list[Deck], Deck]:
        decks = await self.load_decks(user_id)
        for deck in decks:
            if deck.id == deck_id:
                return decks, deck
        raise DeckNotFound(f"Deck {deck_id} not found")

    async def _replace_deck(self, user_id: str, decks: list[Deck], updated: Deck) -> Deck:
        await self.save_decks(user_id, [updated if deck.id == updated.id else deck for deck in decks])
        return updated

    async def delete_deck(self, user_id: str, deck_id: str) -> Deck:
        """Remove a deck and all of its cards.

        The global learned-card count is recomputed from the cards that
        remain, so it never counts cards that no longer exist.

        Raises:
            DeckNotFound: If the user has no such deck.
        """
        decks, deck = await self._load_deck(user_id, deck_id)
        cards = [card for card in await self.load_cards(user_id) if card.deck_id != deck_id]
        stats = await self.load_stats(user_id)
        await self.save_cards(user_id, cards)
        await self.save_decks(user_id, [d for d in decks if d.id != deck_id])
        await self.save_stats(user_id, stats.model_copy(update={"cards_mastered": count_learned(cards)}))
        logger.info("Deleted deck %s for user %s", deck_id, user_id)
        return deck

    async def update_deck(
        self,
        user_id: str,
        deck_id: str,
        title: str | None = None,
        description: str | None = None,
    ) -> Deck:
        """Change a deck's title or description. Cards are left alone."""
        decks, deck = await self._load_deck(user_id, deck_id)
        changes = {}
        if title is not None:
            changes["title"] = title
        if description is not None:
            changes["description"] = description
        return await self._replace_deck(user_id, decks, deck.model_copy(update=changes))

    async def add_folder(self, user_id: str, folder: Folder) -> None:
        folders = await self.load_folders(user_id)
        await self.save_folders(user_id, folders + [folder])

    async def delete_folder(self, user_id: str, folder_id: str) -> int:
        """Remove a folder; its decks move back to the top level.

        Returns:
            The number of decks that were unfiled.

        Raises:
            FolderNotFound: If the user has no such folder.
        """
        folders = await self.load_folders(user_id)
        remaining = [folder for folder in folders if folder.id != folder_id]
        if len(remaining) == len(folders):
            raise FolderNotFound(f"Folder {folder_id} not found")

        decks = await self.load_decks(user_id)
        unfiled = 0
        updated = []
        for deck in decks:
            if deck.folder_id == folder_id:
                deck = deck.model_copy(update={"folder_id": None})
                unfiled += 1
            updated.append(deck)
        await self.save_decks(user_id, updated)
        await self.save_folders(user_id, remaining)
        logger.info("Deleted folder %s for user %s, %d decks unfiled", folder_id, user_id, unfiled)
        return unfiled

    async def move_deck(self, user_id: str, deck_id: str, folder_id: str | None) -> Deck:
        """File a deck under a folder, or at the top level when ``folder_id`` is None.

        Raises:
            DeckNotFound: If the user has no such deck.
            FolderNotFound: If ``folder_id`` names a folder that does not exist.
        """
        if folder_id is not None and not any(f.id == folder_id for f in await self.load_folders(user_id)):
            raise FolderNotFound(f"Folder {folder_id} not found")
        decks, deck = await self._load_deck(user_id, deck_id)
        return await self._replace_deck(user_id, decks, deck.model_copy(update={"folder_id": folder_id}))

    async def commit_outcome(self, user_id: str, outcome: SessionOutcome) -> None:
        """Write a finished session's cards, decks and stats.

        Raises:
            PersistenceError: If any write fails. The outcome is attached so
                the caller can retry without replaying the session.
        """
        try:
            await self.save_cards(user_id, outcome.cards)
            await self.save_decks(user_id, outcome.decks)
            await self.save_stats(user_id, outcome.stats)
        except Exception as exc:
            logger.exception("Failed to persist session outcome for user %s", user_id)
            raise PersistenceError("Could not save session results", outcome) from exc
