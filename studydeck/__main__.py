"""CLI interface for StudyDeck.

Usage:
    python -m studydeck import cards.json --title "Cardiology"   Create a deck
    python -m studydeck decks                                    List decks
    python -m studydeck rename DECK_ID "New title"               Rename a deck
    python -m studydeck delete DECK_ID                           Delete a deck and its cards
    python -m studydeck review DECK_ID                           Study a deck
    python -m studydeck stats                                    Show your statistics
    python -m studydeck due                                      Show cards due
"""

import argparse
import asyncio
import logging
import random
from pathlib import Path

from pydantic import TypeAdapter

from backend.api.deps import get_evaluator, get_repository
from backend.config import utcnow
from backend.database import init_db
from backend.srs.assessment import MANUAL_RATINGS, is_auto_rated
from backend.srs.cards import Card, CardKind
from backend.srs.errors import DeckNotFound, EmptyDeckError, PersistenceError
from backend.srs.ingest import CardRecord, create_deck
from backend.srs.queue import SkipResult, shuffled
from backend.srs.session import StudySession, start_session
from backend.srs.sm2 import is_due

logger = logging.getLogger(__name__)

_records_adapter = TypeAdapter(list[CardRecord])


def load_records(path: Path) -> list[CardRecord]:
    """Read generator output: a JSON list of card records."""
    return _records_adapter.validate_json(path.read_bytes())


def parse_matching(text: str, left: list[str], right: list[str]) -> dict[str, str] | str:
    """Turn ``1=3, 2=1`` into a left->right mapping.

    Unparseable input is passed through as text so the evaluator can reject it.
    """
    matches: dict[str, str] = {}
    for part in text.split(","):
        if "=" not in part:
            return text
        left_no, right_no = (p.strip() for p in part.split("=", 1))
        if not (left_no.isdigit() and right_no.isdigit()):
            return text
        li, ri = int(left_no) - 1, int(right_no) - 1
        if 0 <= li < len(left) and 0 <= ri < len(right):
            matches[left[li]] = right[ri]
    return matches


def present(card: Card, progress: int, remaining: int) -> list[str]:
    """Print a card and return the shuffled right column for matching cards."""
    print(f"\n  [{progress}% | {remaining} in queue] ({card.kind.value})")
    print(f"  {card.prompt}")
    right: list[str] = []
    if card.kind is CardKind.CHOICE:
        for i, option in enumerate(card.options, 1):
            print(f"    {i}. {option}")
    elif card.kind is CardKind.BOOLEAN:
        print("    (true / false)")
    elif card.kind is CardKind.MATCHING:
        right = shuffled([pair.right for pair in card.matching_pairs], random.Random())
        for i, pair in enumerate(card.matching_pairs, 1):
            print(f"    {i}. {pair.left}")
        for i, item in enumerate(right, 1):
            print(f"       {i}) {item}")
        print("    Answer like: 1=2, 2=1")
    return right


async def cmd_import(args: argparse.Namespace) -> None:
    """Create a deck from a JSON file of card records."""
    await init_db()
    records = load_records(Path(args.file))
    if not records:
        print("  No cards found in file.")
        return
    deck, cards = create_deck(args.title, records, description=args.description)
    await get_repository().add_deck(args.user, deck, cards)
    print(f"  Created deck '{deck.title}' ({deck.id}) with {len(cards)} cards.")


async def cmd_decks(args: argparse.Namespace) -> None:
    """List decks with mastery and due counts."""
    await init_db()
    repository = get_repository()
    decks = await repository.load_decks(args.user)
    cards = await repository.load_cards(args.user)
    if not decks:
        print("  No decks yet. Use 'import' to add one.")
        return
    now = utcnow()
    for deck in decks:
        due = sum(1 for c in cards if c.deck_id == deck.id and is_due(c.next_due, now))
        print(f"  {deck.id}  {deck.title:<30} {deck.mastery_level:>3}% mastered  {due} due")


async def cmd_rename(args: argparse.Namespace) -> None:
    """Change a deck's title."""
    await init_db()
    try:
        deck = await get_repository().update_deck(args.user, args.deck_id, title=args.title)
    except DeckNotFound:
        print("  No such deck.")
        return
    print(f"  Renamed deck {deck.id} to '{deck.title}'.")


async def cmd_delete(args: argparse.Namespace) -> None:
    """Delete a deck and its cards."""
    await init_db()
    if not args.yes and input("  Delete this deck and all its cards? [y/N]: ").strip().lower() != "y":
        return
    try:
        deck = await get_repository().delete_deck(args.user, args.deck_id)
    except DeckNotFound:
        print("  No such deck.")
        return
    print(f"  Deleted deck '{deck.title}'.")


async def run_review(session: StudySession) -> bool:
    """Drive a session interactively. Returns False if the learner quit."""
    print("\n  Commands: 's' to skip, 'q' to quit (nothing is saved)")
    while (card := session.current_card()) is not None:
        right = present(card, session.progress_percent(), session.remaining)
        answer = input("\n  Your answer: ").strip()

        if answer.lower() == "q":
            session.cancel()
            print("\n  Session ended early. Nothing was saved.")
            return False
        if answer.lower() == "s":
            if session.skip() is SkipResult.NOT_SKIPPABLE:
                print("  This is the last card, it can't be skipped.")
            continue

        response: str | dict[str, str] = answer
        if card.kind is CardKind.CHOICE and answer.isdigit():
            idx = int(answer) - 1
            if 0 <= idx < len(card.options):
                response = card.options[idx]
        elif card.kind is CardKind.MATCHING:
            response = parse_matching(answer, [p.left for p in card.matching_pairs], right)

        feedback = await session.submit(response)
        if is_auto_rated(card, feedback):
            print("  Correct!")
            continue

        print(f"  {feedback.message}")
        print(f"  Answer: {feedback.expected}")
        if feedback.explanation:
            print(f"  Why: {feedback.explanation}")

        rating = None
        while rating not in MANUAL_RATINGS:
            raw = input("  Rate [1=forgot 3=hard 4=good 5=easy]: ").strip()
            rating = int(raw) if raw.isdigit() else None
        session.rate(rating)
    return True


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive study session on one deck."""
    await init_db()
    repository = get_repository()
    cards = await repository.load_deck_cards(args.user, args.deck_id)
    try:
        session = start_session(args.deck_id, cards, evaluator=get_evaluator())
    except EmptyDeckError:
        print("  That deck is empty or does not exist.")
        return

    print(f"\n  Study Session: {session.queue.total_unique} cards")
    if not await run_review(session):
        return

    for attempt in range(1, 4):
        try:
            outcome = await session.finish(repository, args.user)
            break
        except PersistenceError:
            logger.warning("Saving session failed (attempt %d)", attempt)
            if input("  Saving failed. Retry? [Y/n]: ").strip().lower() == "n":
                return
    else:
        print("  Could not save the session.")
        return

    print("\n  Session Complete!")
    print(f"  Cards rescheduled: {len(outcome.updated_card_ids)}")
    print(f"  Deck mastery: {outcome.deck_mastery}%   +{outcome.xp_gained} XP")
    print(f"  Streak: {outcome.stats.streak} days\n")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show global statistics."""
    await init_db()
    repository = get_repository()
    stats = await repository.load_stats(args.user)
    cards = await repository.load_cards(args.user)

    print("\n  StudyDeck Statistics")
    print(f"  {'Total cards:':<20} {len(cards)}")
    print(f"  {'Cards learned:':<20} {stats.cards_mastered}")
    print(f"  {'Streak:':<20} {stats.streak}")
    print(f"  {'Total XP:':<20} {stats.total_xp}")
    last = stats.last_study_date.strftime("%Y-%m-%d %H:%M") if stats.last_study_date else "never"
    print(f"  {'Last studied:':<20} {last}")
    print()


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await init_db()
    cards = await get_repository().load_cards(args.user)
    now = utcnow()
    due = sum(1 for card in cards if is_due(card.next_due, now))
    print(f"  {due} of {len(cards)} cards due")


def main() -> None:
    """Entry point for the StudyDeck CLI application."""
    parser = argparse.ArgumentParser(
        prog="studydeck",
        description="Adaptive spaced repetition study decks",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-u", "--user", default="local", help="User whose decks to use")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    import_parser = subparsers.add_parser("import", help="Create a deck from a JSON card file")
    import_parser.add_argument("file", help="JSON list of card records")
    import_parser.add_argument("-t", "--title", required=True, help="Deck title")
    import_parser.add_argument("-d", "--description", default="", help="Deck description")

    subparsers.add_parser("decks", help="List your decks")

    rename_parser = subparsers.add_parser("rename", help="Rename a deck")
    rename_parser.add_argument("deck_id", help="Deck to rename")
    rename_parser.add_argument("title", help="New title")

    delete_parser = subparsers.add_parser("delete", help="Delete a deck and its cards")
    delete_parser.add_argument("deck_id", help="Deck to delete")
    delete_parser.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")

    review_parser = subparsers.add_parser("review", help="Study a deck")
    review_parser.add_argument("deck_id", help="Deck to study")

    subparsers.add_parser("stats", help="Show your statistics")
    subparsers.add_parser("due", help="Show cards due for review")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "import": cmd_import,
        "decks": cmd_decks,
        "rename": cmd_rename,
        "delete": cmd_delete,
        "review": cmd_review,
        "stats": cmd_stats,
        "due": cmd_due,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
