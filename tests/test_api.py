"""End-to-end tests for the HTTP API over an in-memory store."""

import pytest
from httpx import ASGITransport, AsyncClient

from backend.api.deps import get_evaluator, get_repository
from backend.main import app
from backend.srs.assessment import AnswerEvaluator
from backend.storage import InMemoryStore, StudyRepository

ANSWERS = {
    "Capital of France?": "Paris",
    "Capital of Italy?": "Rome",
    "Capital of Spain?": "Madrid",
}

DECK_PAYLOAD = {
    "title": "Capitals",
    "description": "European capitals",
    "cards": [
        {"prompt": prompt, "answer": answer, "kind": "choice", "options": ["Paris", "Rome", "Madrid"]}
        for prompt, answer in ANSWERS.items()
    ],
}


class TestStudyAPI:
    def setup_method(self) -> None:
        self.repository = StudyRepository(InMemoryStore())
        app.dependency_overrides[get_repository] = lambda: self.repository
        app.dependency_overrides[get_evaluator] = lambda: AnswerEvaluator()

    def teardown_method(self) -> None:
        app.dependency_overrides.clear()

    def _client(self) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    async def _create_deck(self, client: AsyncClient) -> str:
        response = await client.post("/api/decks/u1", json=DECK_PAYLOAD)
        assert response.status_code == 200
        return response.json()["id"]

    async def _start(self, client: AsyncClient, deck_id: str) -> str:
        response = await client.post("/api/session/start", params={"user_id": "u1", "deck_id": deck_id})
        assert response.status_code == 200
        assert response.json()["total_cards"] == 3
        return response.json()["session_id"]

    @pytest.mark.asyncio
    async def test_full_session(self) -> None:
        async with self._client() as client:
            deck_id = await self._create_deck(client)
            session_id = await self._start(client, deck_id)

            while True:
                current = await client.get(f"/api/session/{session_id}/current")
                if current.status_code == 410:
                    break
                card = current.json()
                assert card["kind"] == "choice"
                assert card["progress_percent"] < 100
                submitted = await client.post(
                    f"/api/session/{session_id}/submit",
                    json={"response": ANSWERS[card["prompt"]]},
                )
                feedback = submitted.json()
                assert feedback["passed"]
                assert feedback["auto_rated"]
                assert feedback["correct_answer"] is None

            progress = await client.get(f"/api/session/{session_id}/progress")
            assert progress.json() == {"progress_percent": 100, "remaining": 0, "session_complete": True}

            completed = await client.post(f"/api/session/{session_id}/complete")
            assert completed.status_code == 200
            outcome = completed.json()
            assert outcome["cards_rescheduled"] == 3
            assert outcome["deck_mastery"] == 100
            assert outcome["xp_gained"] == 150
            assert outcome["streak"] == 1

            stats = (await client.get("/api/stats/u1")).json()
            assert stats["total_xp"] == 150
            assert stats["cards_mastered"] == 3
            assert stats["cards_due"] == 0

            decks = (await client.get("/api/decks/u1")).json()
            assert decks[0]["mastery_level"] == 100

            cards = (await client.get(f"/api/decks/u1/{deck_id}/cards")).json()
            assert all(card["interval"] == 1 for card in cards)

            # The finished session is gone
            assert (await client.get(f"/api/session/{session_id}/current")).status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_answer_needs_rating(self) -> None:
        async with self._client() as client:
            deck_id = await self._create_deck(client)
            session_id = await self._start(client, deck_id)
            card = (await client.get(f"/api/session/{session_id}/current")).json()
            wrong = next(option for option in card["options"] if option != ANSWERS[card["prompt"]])

            feedback = (
                await client.post(f"/api/session/{session_id}/submit", json={"response": wrong})
            ).json()
            assert not feedback["passed"]
            assert not feedback["auto_rated"]
            assert feedback["correct_answer"] == ANSWERS[card["prompt"]]

            again = await client.post(f"/api/session/{session_id}/submit", json={"response": wrong})
            assert again.status_code == 409

            invalid = await client.post(f"/api/session/{session_id}/rate", json={"rating": 2})
            assert invalid.status_code == 422

            rated = await client.post(f"/api/session/{session_id}/rate", json={"rating": 1})
            assert rated.status_code == 200
            assert rated.json()["decision"] == "failed"
            assert rated.json()["remaining"] == 3

    @pytest.mark.asyncio
    async def test_complete_before_done(self) -> None:
        async with self._client() as client:
            session_id = await self._start(client, await self._create_deck(client))
            response = await client.post(f"/api/session/{session_id}/complete")
            assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_skip(self) -> None:
        async with self._client() as client:
            session_id = await self._start(client, await self._create_deck(client))
            first = (await client.get(f"/api/session/{session_id}/current")).json()
            response = await client.post(f"/api/session/{session_id}/skip")
            assert response.json() == {"skipped": True}
            second = (await client.get(f"/api/session/{session_id}/current")).json()
            assert second["card_id"] != first["card_id"]

    @pytest.mark.asyncio
    async def test_cancel_saves_nothing(self) -> None:
        async with self._client() as client:
            deck_id = await self._create_deck(client)
            session_id = await self._start(client, deck_id)
            await client.post(f"/api/session/{session_id}/rate", json={"rating": 5})

            response = await client.delete(f"/api/session/{session_id}")
            assert response.json() == {"status": "cancelled"}
            assert (await client.get(f"/api/session/{session_id}/current")).status_code == 404

            stats = (await client.get("/api/stats/u1")).json()
            assert stats["total_xp"] == 0
            assert stats["cards_due"] == 3

    @pytest.mark.asyncio
    async def test_empty_deck_not_startable(self) -> None:
        async with self._client() as client:
            response = await client.post("/api/session/start", params={"user_id": "u1", "deck_id": "nope"})
            assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_deck_needs_cards(self) -> None:
        async with self._client() as client:
            response = await client.post("/api/decks/u1", json={"title": "Empty", "cards": []})
            assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_session(self) -> None:
        async with self._client() as client:
            assert (await client.get("/api/session/missing/progress")).status_code == 404
            assert (await client.delete("/api/session/missing")).status_code == 404


class TestDeckOrganizationAPI:
    def setup_method(self) -> None:
        self.repository = StudyRepository(InMemoryStore())
        app.dependency_overrides[get_repository] = lambda: self.repository

    def teardown_method(self) -> None:
        app.dependency_overrides.clear()

    def _client(self) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    @pytest.mark.asyncio
    async def test_rename_deck(self) -> None:
        async with self._client() as client:
            deck_id = (await client.post("/api/decks/u1", json=DECK_PAYLOAD)).json()["id"]
            response = await client.patch(f"/api/decks/u1/{deck_id}", json={"title": "World Capitals"})
            assert response.status_code == 200
            assert response.json()["title"] == "World Capitals"
            assert response.json()["description"] == "European capitals"
            assert response.json()["total_cards"] == 3

            blank = await client.patch(f"/api/decks/u1/{deck_id}", json={"title": ""})
            assert blank.status_code == 422
            missing = await client.patch("/api/decks/u1/nope", json={"title": "X"})
            assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_deck(self) -> None:
        async with self._client() as client:
            deck_id = (await client.post("/api/decks/u1", json=DECK_PAYLOAD)).json()["id"]
            response = await client.delete(f"/api/decks/u1/{deck_id}")
            assert response.json() == {"status": "deleted"}

            assert (await client.get("/api/decks/u1")).json() == []
            stats = (await client.get("/api/stats/u1")).json()
            assert stats["total_cards"] == 0
            assert stats["cards_mastered"] == 0
            assert (await client.delete(f"/api/decks/u1/{deck_id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_folders(self) -> None:
        async with self._client() as client:
            folder = (await client.post("/api/folders/u1", json={"name": "Semester 1"})).json()
            assert folder["deck_count"] == 0

            payload = {**DECK_PAYLOAD, "folder_id": folder["id"]}
            filed = (await client.post("/api/decks/u1", json=payload)).json()
            assert filed["folder_id"] == folder["id"]
            loose = (await client.post("/api/decks/u1", json=DECK_PAYLOAD)).json()
            assert loose["folder_id"] is None

            moved = await client.put(f"/api/decks/u1/{loose['id']}/folder", json={"folder_id": folder["id"]})
            assert moved.json()["folder_id"] == folder["id"]

            folders = (await client.get("/api/folders/u1")).json()
            assert folders[0]["deck_count"] == 2
            in_folder = (await client.get("/api/decks/u1", params={"folder_id": folder["id"]})).json()
            assert len(in_folder) == 2

            deleted = await client.delete(f"/api/folders/u1/{folder['id']}")
            assert deleted.json() == {"status": "deleted", "decks_unfiled": 2}
            decks = (await client.get("/api/decks/u1")).json()
            assert len(decks) == 2
            assert all(deck["folder_id"] is None for deck in decks)

    @pytest.mark.asyncio
    async def test_unknown_folder(self) -> None:
        async with self._client() as client:
            payload = {**DECK_PAYLOAD, "folder_id": "nope"}
            assert (await client.post("/api/decks/u1", json=payload)).status_code == 404
            deck_id = (await client.post("/api/decks/u1", json=DECK_PAYLOAD)).json()["id"]
            moved = await client.put(f"/api/decks/u1/{deck_id}/folder", json={"folder_id": "nope"})
            assert moved.status_code == 404
            assert (await client.delete("/api/folders/u1/nope")).status_code == 404
            assert (await client.post("/api/folders/u1", json={"name": ""})).status_code == 422
