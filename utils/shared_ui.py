"""Shared UI plumbing for the Streamlit review page."""

import hmac
import logging
import os
from collections.abc import Callable
from typing import Any

import streamlit as st

from utils.app_state import ReviewState, login, logout
from utils.config_utils import resolve_app_password, resolve_reviewers, resolve_storage_config
from utils.data_helpers import init_session_state, maybe_load_dotenv
from utils.review_api import ReviewApiClient
from utils.review_store import store_from_config

logger = logging.getLogger(__name__)


def configure_page(title: str = "SensAI Eval", layout: str = "wide") -> None:
    """Configure Streamlit page settings."""
    st.set_page_config(page_title=title, layout=layout)


def _secrets() -> dict[str, Any]:
    try:
        return dict(st.secrets)
    except Exception:
        return {}


def get_state() -> ReviewState:
    init_session_state({"review_state": ReviewState()})
    return st.session_state.review_state


def dispatch(reducer: Callable[..., ReviewState], *args: Any, **kwargs: Any) -> ReviewState:
    """Apply a reducer to the stored state and keep the new snapshot."""
    new_state = reducer(get_state(), *args, **kwargs)
    st.session_state.review_state = new_state
    return new_state


def check_authentication() -> bool:
    """Show the login form until a reviewer has signed in. Returns True once signed in."""
    maybe_load_dotenv()
    state = get_state()
    if state.current_user:
        return True

    secrets = _secrets()
    reviewers = resolve_reviewers(secrets, os.environ)
    app_password = resolve_app_password(st.session_state, secrets, os.environ)["password"]

    st.title("🔒 Authentication Required")
    username = st.selectbox("Username", options=[""] + reviewers, format_func=lambda u: u or "Select username")
    pw = st.text_input("Password", type="password", key="_app_password_input")
    col_login, _ = st.columns([1, 3])
    with col_login:
        if st.button("Login", type="primary"):
            if not username:
                st.error("Please select a username")
            elif not hmac.compare_digest(str(pw), str(app_password)):
                st.error("You need to enter the right password")
            else:
                dispatch(login, username)
                st.session_state.pop("_app_password_input", None)
                st.session_state.pop("conversations", None)
                st.session_state.pop("queues", None)
                st.rerun()

    return False


def sign_out() -> None:
    dispatch(logout)
    for key in ("conversations", "queues"):
        st.session_state.pop(key, None)
    st.rerun()


@st.cache_resource(show_spinner=False)
def _backend_for(config_key: tuple[tuple[str, Any], ...]) -> Any:
    config = dict(config_key)
    if config["backend"] == "api":
        return ReviewApiClient(config["api_base_url"])
    return store_from_config(config)


def get_backend() -> Any:
    """Review backend for this session: the HTTP API when REVIEW_API_URL is set, else an in-process store."""
    config = resolve_storage_config(st.session_state, _secrets(), os.environ)
    key = tuple(sorted((k, v) for k, v in config.items() if k != "sources"))
    return _backend_for(key)


def load_documents(force: bool = False) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Load conversations and queues into session state once per login (or when forced)."""
    if force or "conversations" not in st.session_state or "queues" not in st.session_state:
        backend = get_backend()
        with st.spinner("Loading runs and queues..."):
            try:
                st.session_state.conversations = backend.load_conversations()
                st.session_state.queues = backend.load_queues()
            except Exception as e:
                logger.error("Error loading review data: %s", e)
                st.session_state.conversations = st.session_state.get("conversations", [])
                st.session_state.queues = st.session_state.get("queues", [])
                st.error(f"Error loading data: {e}")
    return st.session_state.conversations, st.session_state.queues


def toast(level: str, message: str) -> None:
    icons = {"success": "✅", "warning": "⚠️", "error": "❌"}
    st.toast(message, icon=icons.get(level))
