from __future__ import annotations

import anyio
from fastapi.testclient import TestClient
import pytest

from live_quiz.server.api_server import create_api_app

TEACHER = {"X-User-Id": "teacher-1", "X-User-Role": "teacher", "X-User-Name": "Ms Frizzle"}
STUDENT = {"X-User-Id": "S1", "X-User-Role": "student", "X-User-Name": "Arnold"}


@pytest.fixture
def client(manager) -> TestClient:
    return TestClient(create_api_app(manager, run_background_tasks=False))


def _start(client: TestClient) -> str:
    response = client.post("/api/quizzes/quiz-1/start-live", headers=TEACHER)
    assert response.status_code == 200
    return response.json()["join_code"]


def test_student_page_is_served(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "EventSource" in response.text


def test_full_live_flow_over_http(client, repository):
    code = _start(client)

    joined = client.post(f"/api/live/{code}/join", json={"display_name": "Arnie"}, headers=STUDENT)
    assert joined.json() == {"status": "waiting", "participant_count": 1, "question_count": 2}

    assert client.post(f"/api/live/{code}/next", headers=TEACHER).json()["current_question"] == 0
    answer = client.post(f"/api/live/{code}/answer", json={"answer": "B"}, headers=STUDENT)
    assert answer.status_code == 200
    assert answer.json()["correct"] is True
    assert answer.json()["score"] == 1

    duplicate = client.post(f"/api/live/{code}/answer", json={"answer": "B"}, headers=STUDENT)
    assert duplicate.status_code == 409

    ended = client.post(f"/api/live/{code}/end", headers=TEACHER).json()
    assert ended["status"] == "ended"
    assert ended["leaderboard"] == [{"rank": 1, "user_id": "S1", "name": "Arnie", "score": 1}]

    status = client.get(f"/api/live/{code}/status", headers=STUDENT).json()
    assert status["status"] == "ended"
    assert repository.list_attempts("quiz-1")[0].score == 1


def test_answer_after_question_closed_is_conflict(client):
    code = _start(client)
    client.post(f"/api/live/{code}/join", headers=STUDENT)
    response = client.post(f"/api/live/{code}/answer", json={"answer": "B"}, headers=STUDENT)
    assert response.status_code == 409
    assert response.json()["detail"] == "No active question."


def test_students_cannot_drive_a_session(client):
    code = _start(client)
    assert client.post(f"/api/live/{code}/next", headers=STUDENT).status_code == 403
    assert client.post("/api/quizzes/quiz-1/start-live", headers=STUDENT).status_code == 403


def test_other_teacher_is_not_the_host(client):
    code = _start(client)
    other = {**TEACHER, "X-User-Id": "teacher-2"}
    response = client.post(f"/api/live/{code}/end", headers=other)
    assert response.status_code == 403
    assert response.json()["detail"] == "Not the session host."


def test_unknown_session_and_quiz_are_not_found(client):
    assert client.get("/api/live/000000/status", headers=STUDENT).status_code == 404
    assert client.get("/api/live/000000/stream", params={"user_id": "S1"}).status_code == 404
    assert client.post("/api/quizzes/nope/start-live", headers=TEACHER).status_code == 404


def test_missing_identity_is_rejected(client):
    assert client.post("/api/quizzes/quiz-1/start-live").status_code == 401


def test_draft_quiz_cannot_start(client, repository):
    repository.set_quiz_status("quiz-1", "draft")
    response = client.post("/api/quizzes/quiz-1/start-live", headers=TEACHER)
    assert response.status_code == 400
    assert response.json()["detail"] == "Quiz must be published to start live."


def test_asynchronous_submission(client):
    response = client.post(
        "/api/quizzes/quiz-1/submit",
        json={"answers": [{"question_id": "q1", "answer": "b"}, {"question_id": "q2", "answer": "False"}]},
        headers=STUDENT,
    )
    body = response.json()
    assert response.status_code == 200
    assert body["score"] == 1
    assert body["total_marks"] == 2
    assert body["percentage"] == 50.0
    assert body["passed"] is True
    assert [r["is_correct"] for r in body["results"]] == [True, False]


def test_student_page_renders_names_as_text(client):
    page = client.get("/").text
    assert "li.textContent = `${r.name}: ${r.score}`" in page
    assert "<li>${r.name}" not in page


def test_student_page_has_matching_and_ordering_pickers(client):
    page = client.get("/").text
    assert "renderMatching(q.options)" in page
    assert "renderOrdering(q.options.items)" in page


def _http_scope(method: str, path: str, query: bytes = b"", headers: tuple = ()) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query,
        "root_path": "",
        "headers": [(b"host", b"testserver"), *headers],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }


def test_open_streams_do_not_starve_other_requests(manager):
    app = create_api_app(manager, run_background_tasks=False)
    code = manager.start_live("quiz-1", "teacher-1").join_code
    # Above the default worker thread limit of 40.
    stream_count = 60

    async def open_stream(user_id: str, connected: list[str]) -> None:
        async def receive() -> dict:
            await anyio.sleep_forever()

        async def send(message: dict) -> None:
            if message["type"] == "http.response.body" and b"event: connected" in message.get("body", b""):
                connected.append(user_id)

        scope = _http_scope("GET", f"/api/live/{code}/stream", query=f"user_id={user_id}".encode())
        await app(scope, receive, send)

    async def join_late_student() -> int:
        messages: list[dict] = []

        async def receive() -> dict:
            return {"type": "http.request", "body": b'{"display_name": "Late"}', "more_body": False}

        async def send(message: dict) -> None:
            messages.append(message)

        headers = ((b"x-user-id", b"late"), (b"content-type", b"application/json"))
        await app(_http_scope("POST", f"/api/live/{code}/join", headers=headers), receive, send)
        return messages[0]["status"]

    async def scenario() -> int:
        connected: list[str] = []
        async with anyio.create_task_group() as group:
            for index in range(stream_count):
                group.start_soon(open_stream, f"s{index}", connected)
            with anyio.fail_after(10):
                while len(connected) < stream_count:
                    await anyio.sleep(0.01)
            with anyio.fail_after(5):
                status = await join_late_student()
            group.cancel_scope.cancel()
        return status

    assert anyio.run(scenario) == 200
    assert manager.status(code).participant_count == 1
    assert manager.get_session(code).channel.subscriber_count() == 0
