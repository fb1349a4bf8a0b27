"""FastAPI server exposing live quiz endpoints and the student page."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, StreamingResponse
from pydantic import BaseModel
import uvicorn

from live_quiz.constants.about import APP_ABOUT_TEXT, APP_NAME, APP_VERSION
from live_quiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from live_quiz.constants.quiz_constants import HOST_ROLES
from live_quiz.core.errors import (
    AlreadyAnswered,
    AlreadyEnded,
    Forbidden,
    LiveSessionError,
    NoActiveQuestion,
    NotAJoinedParticipant,
    QuizNotFound,
    QuizNotLive,
    SessionEnded,
    SessionNotFound,
)
from live_quiz.core.live_quiz_manager import LiveQuizManager
from live_quiz.core.markdown_math_renderer import MATHJAX_SCRIPT_URL
from live_quiz.core.models import SessionSnapshot, SubmittedAnswer
from live_quiz.core.services.broadcast_channel import QueueConnection

logger = logging.getLogger(__name__)

_USER_ID_HEADER = "x-user-id"
_USER_ROLE_HEADER = "x-user-role"
_USER_NAME_HEADER = "x-user-name"

_ERROR_STATUS: dict[type[LiveSessionError], int] = {
    SessionNotFound: 404,
    QuizNotFound: 404,
    Forbidden: 403,
    SessionEnded: 409,
    AlreadyEnded: 409,
    AlreadyAnswered: 409,
    NoActiveQuestion: 409,
    NotAJoinedParticipant: 400,
    QuizNotLive: 400,
}


@dataclass(frozen=True, slots=True)
class Identity:
    """Caller identity, already verified by the upstream auth layer."""

    user_id: str
    role: str
    name: str

    @property
    def can_host(self) -> bool:
        return self.role in HOST_ROLES


def _read_identity(request: Request) -> Identity:
    # EventSource cannot send headers, so query parameters are accepted too.
    user_id = request.headers.get(_USER_ID_HEADER) or request.query_params.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing authenticated user.")
    role = request.headers.get(_USER_ROLE_HEADER) or request.query_params.get("role") or "student"
    name = request.headers.get(_USER_NAME_HEADER) or request.query_params.get("name") or "Unknown"
    return Identity(user_id=user_id, role=role.lower(), name=name)


def _require_host_role(identity: Identity = Depends(_read_identity)) -> Identity:
    if not identity.can_host:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return identity


def _to_http_error(exc: LiveSessionError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(exc), 400)
    return HTTPException(status_code=status_code, detail=str(exc))


def _snapshot_body(snapshot: SessionSnapshot) -> dict[str, Any]:
    return {
        "join_code": snapshot.join_code,
        "status": snapshot.status.value,
        "current_question": snapshot.question_index,
        "total_questions": snapshot.total_questions,
        "participant_count": snapshot.participant_count,
        "leaderboard": [
            {"rank": row.rank, "user_id": row.user_id, "name": row.name, "score": row.score}
            for row in snapshot.leaderboard
        ],
    }


class JoinPayload(BaseModel):
    """Payload schema for joining a live session."""

    display_name: str | None = None


class AnswerPayload(BaseModel):
    """Payload schema for a live answer. Structured types send JSON lists."""

    answer: Any = None


class SubmissionAnswerPayload(BaseModel):
    question_id: str
    answer: Any = None


class SubmissionPayload(BaseModel):
    """Payload schema for an asynchronous whole-quiz submission."""

    answers: list[SubmissionAnswerPayload]


def _get_manager_dependency(manager: LiveQuizManager):
    def dependency() -> LiveQuizManager:
        return manager

    return dependency


def create_api_app(manager: LiveQuizManager, run_background_tasks: bool = True) -> FastAPI:
    """Create a FastAPI application wired to the provided live quiz manager."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_background_tasks:
            manager.start_background_tasks()
        logger.info("%s API ready", APP_NAME)
        yield
        manager.shutdown()
        logger.info("%s API stopped", APP_NAME)

    app = FastAPI(title=f"{APP_NAME} API", description=APP_ABOUT_TEXT, version=APP_VERSION, lifespan=lifespan)
    manager_dep = _get_manager_dependency(manager)

    @app.get("/", response_class=HTMLResponse)
    def serve_student_page() -> str:
        return _STUDENT_PAGE_HTML

    @app.post("/api/quizzes/{quiz_id}/start-live")
    def start_live(
        quiz_id: str,
        identity: Identity = Depends(_require_host_role),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            info = live.start_live(quiz_id, identity.user_id)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return {
            "join_code": info.join_code,
            "quiz_title": info.quiz_title,
            "question_count": info.question_count,
            "time_per_question": info.time_per_question,
        }

    @app.get("/api/live/{code}/stream")
    def stream_events(
        code: str,
        identity: Identity = Depends(_read_identity),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> StreamingResponse:
        connection = QueueConnection()
        try:
            live.subscribe(code, connection)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        logger.debug("User %s subscribed to session %s", identity.user_id, code)

        # Runs on the event loop, never in the worker thread pool.
        async def event_frames() -> AsyncIterator[str]:
            try:
                async for frame in connection.frames():
                    yield frame
            finally:
                connection.close()
                live.unsubscribe(code, connection)

        return StreamingResponse(
            event_frames(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post("/api/live/{code}/join")
    def join_session(
        code: str,
        payload: JoinPayload | None = None,
        identity: Identity = Depends(_read_identity),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        chosen_name = identity.name
        if payload is not None and payload.display_name and payload.display_name.strip():
            chosen_name = payload.display_name.strip()
        try:
            snapshot = live.join(code, identity.user_id, chosen_name)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return {
            "status": snapshot.status.value,
            "participant_count": snapshot.participant_count,
            "question_count": snapshot.total_questions,
        }

    @app.post("/api/live/{code}/next")
    def next_question(
        code: str,
        identity: Identity = Depends(_require_host_role),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            snapshot = live.advance(code, identity.user_id)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return _snapshot_body(snapshot)

    @app.post("/api/live/{code}/answer")
    def submit_answer(
        code: str,
        payload: AnswerPayload,
        identity: Identity = Depends(_read_identity),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            outcome = live.submit_answer(code, identity.user_id, payload.answer)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return {
            "correct": outcome.record.is_correct,
            "score": outcome.score,
            "question_index": outcome.record.question_index,
            "elapsed_seconds": round(outcome.record.elapsed_seconds, 3),
        }

    @app.post("/api/live/{code}/end")
    def end_session(
        code: str,
        identity: Identity = Depends(_require_host_role),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            snapshot = live.end(code, identity.user_id)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return _snapshot_body(snapshot)

    @app.get("/api/live/{code}/status")
    def session_status(
        code: str,
        identity: Identity = Depends(_read_identity),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            snapshot = live.status(code)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return _snapshot_body(snapshot)

    @app.post("/api/quizzes/{quiz_id}/submit")
    def submit_attempt(
        quiz_id: str,
        payload: SubmissionPayload,
        identity: Identity = Depends(_read_identity),
        live: LiveQuizManager = Depends(manager_dep),
    ) -> dict[str, object]:
        answers = [SubmittedAnswer(question_id=a.question_id, answer=a.answer) for a in payload.answers]
        try:
            graded = live.submit_attempt(quiz_id, identity.user_id, answers)
        except LiveSessionError as exc:
            raise _to_http_error(exc) from exc
        return {
            "attempt_id": graded.attempt.id,
            "score": graded.attempt.score,
            "total_marks": graded.attempt.total_marks,
            "percentage": graded.attempt.percentage,
            "passed": graded.passed,
            "results": [
                {
                    "question_id": result.question_id,
                    "is_correct": result.is_correct,
                    "marks_awarded": result.marks_awarded,
                    "feedback": result.feedback,
                }
                for result in graded.results
            ],
        }

    return app


def run_api_server(
    manager: LiveQuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API with uvicorn until interrupted."""
    app = create_api_app(manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    server.run()


_STUDENT_PAGE_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>LiveQuiz</title>
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <style>
      :root { font-family: 'Inter', system-ui, sans-serif; background: #0b1120; color: #f5f7ff; }
      body { margin: 0; padding: 1.5rem; display: flex; flex-direction: column; gap: 1rem; }
      .card { background: #111a30; border-radius: 0.75rem; padding: 1.5rem; box-shadow: 0 0.5rem 1.5rem rgba(0, 0, 0, 0.4); }
      .hidden { display: none; }
      input { border-radius: 0.5rem; border: none; padding: 0.7rem; font-size: 1rem; margin-right: 0.5rem; }
      button { border: none; border-radius: 0.75rem; padding: 0.85rem 1.5rem; font-size: 1rem; background: #1f9aa5; color: #fff; cursor: pointer; }
      button:disabled { opacity: 0.5; cursor: not-allowed; }
      .options-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 0.75rem; margin-top: 1rem; }
      #timer { color: #facc15; }
      #status { min-height: 1.25rem; color: #94a3b8; }
      ol { padding-left: 1.25rem; }
    </style>
    <script>
      window.MathJax = { tex: { inlineMath: [['$','$']], displayMath: [['$$','$$']] } };
    </script>
    <script defer src="__MATHJAX__"></script>
  </head>
  <body>
    <section class="card" id="join-card">
      <h1>Join a live quiz</h1>
      <p><input id="code" placeholder="Join code" maxlength="6" /><input id="name" placeholder="Your name" /></p>
      <button id="join-button">Join</button>
      <p id="join-status"></p>
    </section>
    <section class="card hidden" id="quiz-card">
      <div id="question">Waiting for the teacher to start the first question…</div>
      <p id="timer"></p>
      <div id="options" class="options-grid"></div>
      <div id="free-answer" class="hidden"><input id="answer-text" /><button id="answer-send">Send</button></div>
      <p id="status"></p>
    </section>
    <section class="card hidden" id="results-card">
      <h2>Final leaderboard</h2>
      <ol id="leaderboard"></ol>
    </section>
    <script>
      const userId = localStorage.getItem('livequiz_user') || crypto.randomUUID();
      localStorage.setItem('livequiz_user', userId);
      let code = null;
      let displayName = null;
      let answered = false;
      let timerHandle = null;

      const $ = (id) => document.getElementById(id);
      const show = (el, visible) => el.classList.toggle('hidden', !visible);

      function headers() {
        return { 'Content-Type': 'application/json', 'X-User-Id': userId, 'X-User-Name': displayName || 'Student' };
      }

      async function post(path, body) {
        const response = await fetch(path, { method: 'POST', headers: headers(), body: JSON.stringify(body || {}) });
        const payload = await response.json().catch(() => ({}));
        return { ok: response.ok, payload };
      }

      async function join() {
        code = $('code').value.trim();
        displayName = $('name').value.trim() || 'Student';
        const { ok, payload } = await post(`/api/live/${code}/join`, { display_name: displayName });
        if (!ok) { $('join-status').textContent = payload.detail || 'Unable to join.'; return; }
        show($('join-card'), false);
        show($('quiz-card'), true);
        const params = new URLSearchParams({ user_id: userId, name: displayName });
        const source = new EventSource(`/api/live/${code}/stream?${params}`);
        source.addEventListener('question', (e) => renderQuestion(JSON.parse(e.data)));
        source.addEventListener('answer_update', (e) => {
          const data = JSON.parse(e.data);
          if (answered) $('status').textContent = `Answer sent. ${data.answered}/${data.total} answered.`;
        });
        source.addEventListener('quiz_ended', (e) => { source.close(); renderResults(JSON.parse(e.data).leaderboard); });
      }

      function startTimer(seconds) {
        clearInterval(timerHandle);
        let remaining = seconds;
        $('timer').textContent = `${remaining}s`;
        timerHandle = setInterval(() => {
          remaining -= 1;
          $('timer').textContent = remaining > 0 ? `${remaining}s` : "Time's up";
          if (remaining <= 0) clearInterval(timerHandle);
        }, 1000);
      }

      function renderQuestion(q) {
        answered = false;
        $('question').innerHTML = `<p>Question ${q.index + 1} of ${q.total} · ${q.marks} mark(s)</p>` + q.question_html;
        $('status').textContent = '';
        $('options').innerHTML = '';
        const choices = Array.isArray(q.options) ? q.options : null;
        show($('free-answer'), !choices && q.question_type !== 'matching' && q.question_type !== 'ordering');
        if (q.question_type === 'matching' && q.options) {
          renderMatching(q.options);
        } else if (q.question_type === 'ordering' && q.options) {
          renderOrdering(q.options.items);
        } else if (choices) {
          choices.forEach((option, i) => {
            const button = document.createElement('button');
            button.innerHTML = (q.options_html || choices)[i];
            button.addEventListener('click', () => send(option));
            $('options').appendChild(button);
          });
        }
        startTimer(q.time_limit);
        if (window.MathJax && window.MathJax.typesetPromise) window.MathJax.typesetPromise([$('question'), $('options')]);
      }

      function renderMatching(options) {
        const selects = options.left.map((left) => {
          const row = document.createElement('label');
          row.textContent = `${left} → `;
          const select = document.createElement('select');
          options.right.forEach((right) => select.appendChild(new Option(right, right)));
          row.appendChild(select);
          $('options').appendChild(row);
          return { left, select };
        });
        const button = document.createElement('button');
        button.textContent = 'Send';
        button.addEventListener('click', () => send(selects.map(({ left, select }) => ({ left, right: select.value }))));
        $('options').appendChild(button);
      }

      function renderOrdering(items) {
        const order = [];
        const chosen = document.createElement('p');
        const refresh = () => { chosen.textContent = order.map((i) => items[i]).join(' → ') || 'Tap the items in order.'; };
        items.forEach((item, i) => {
          const button = document.createElement('button');
          button.textContent = item;
          button.addEventListener('click', () => {
            if (order.includes(i)) return;
            order.push(i);
            button.disabled = true;
            refresh();
          });
          $('options').appendChild(button);
        });
        const reset = document.createElement('button');
        reset.textContent = 'Reset';
        reset.addEventListener('click', () => {
          order.length = 0;
          $('options').querySelectorAll('button').forEach((b) => (b.disabled = false));
          refresh();
        });
        const submit = document.createElement('button');
        submit.textContent = 'Send';
        submit.addEventListener('click', () => { if (order.length === items.length) send(order.slice()); });
        $('options').append(chosen, reset, submit);
        refresh();
      }

      async function send(answer) {
        if (answered) return;
        const { ok, payload } = await post(`/api/live/${code}/answer`, { answer });
        if (ok) {
          answered = true;
          $('options').querySelectorAll('button').forEach((b) => (b.disabled = true));
          $('status').textContent = 'Answer sent!';
        } else {
          $('status').textContent = payload.detail === 'No active question.' ? "Time's up" : (payload.detail || 'Unable to send answer.');
        }
      }

      function renderResults(rows) {
        clearInterval(timerHandle);
        show($('quiz-card'), false);
        show($('results-card'), true);
        $('leaderboard').replaceChildren(...rows.map((r) => {
          const li = document.createElement('li');
          li.textContent = `${r.name}: ${r.score}`;
          return li;
        }));
      }

      $('join-button').addEventListener('click', join);
      $('answer-send').addEventListener('click', () => send($('answer-text').value));
    </script>
  </body>
</html>
""".replace("__MATHJAX__", MATHJAX_SCRIPT_URL)
