"""Static metadata describing LiveQuiz."""

APP_NAME = "LiveQuiz"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "LiveQuiz runs teacher-hosted live quiz sessions: students join with a six-digit code, "
    "questions are pushed over server-sent events, and final results are stored as attempts."
)
