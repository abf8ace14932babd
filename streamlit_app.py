"""Streamlit web application for video transcription."""

from pathlib import Path

import streamlit as st

from vid2txt.config import SECRET_ENV_VARS, Config, export_secrets
from vid2txt.credentials import API_KEY_VAR, DotenvCredentialStore, looks_like_api_key
from vid2txt.errors import AuthenticationFailure, TranscriberError, guidance_for
from vid2txt.library import MediaLibrary
from vid2txt.models import PipelinePhase, StatusEvent
from vid2txt.pipeline import build_pipeline
from vid2txt.transcript_store import TranscriptStore
from vid2txt.writers.txt_writer import format_seconds


# Page configuration
st.set_page_config(
    page_title="Video Transcriber",
    page_icon="🎥",
    layout="wide",
    initial_sidebar_state="expanded"
)


def load_streamlit_secrets(include_api_key: bool = True):
    """Expose Streamlit Cloud secrets as environment variables for Config."""
    names = [API_KEY_VAR, *SECRET_ENV_VARS] if include_api_key else list(SECRET_ENV_VARS)
    try:
        if not hasattr(st, 'secrets') or not st.secrets:
            return
        export_secrets(st.secrets, names)
    except (AttributeError, TypeError, KeyError, FileNotFoundError):
        # No secrets file; .env values apply
        pass


st.markdown("""
    <style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        text-align: center;
        margin-bottom: 2rem;
    }
    .stButton>button {
        width: 100%;
        text-align: left;
    }
    </style>
""", unsafe_allow_html=True)

# Initialize session state
if 'result' not in st.session_state:
    st.session_state.result = None
if 'start_time' not in st.session_state:
    st.session_state.start_time = 0
if 'needs_api_key' not in st.session_state:
    st.session_state.needs_api_key = False
if 'last_error' not in st.session_state:
    st.session_state.last_error = None

# A key rejected by the service stays deleted until a new one is entered
load_streamlit_secrets(include_api_key=not st.session_state.needs_api_key)


@st.cache_resource
def get_config() -> Config:
    config = Config.from_env()
    config.validate()
    config.ensure_directories()
    return config


def get_credentials() -> DotenvCredentialStore:
    return DotenvCredentialStore(Path(".env"))


def show_error(error: Exception) -> None:
    st.error(f"✗ {error}")
    hint = guidance_for(error)
    if hint:
        st.caption(hint)


def render_api_key_form(credentials: DotenvCredentialStore) -> None:
    """Ask for the OpenAI API key; used at first launch and after a 401."""
    with st.form("api_key_form", clear_on_submit=True):
        key = st.text_input("OpenAI API key", type="password", placeholder="sk-...")
        if st.form_submit_button("Save API key"):
            if not looks_like_api_key(key):
                st.error("Invalid API key format. OpenAI keys start with 'sk-'.")
            else:
                credentials.set(key)
                st.session_state.needs_api_key = False
                st.session_state.last_error = None
                st.success("✓ API key saved")
                st.rerun()


def run_pipeline(target, force: bool) -> None:
    """Run the pipeline with a progress bar bound to its status events."""
    config = get_config()
    credentials = get_credentials()
    # Rebuilt per run so a newly saved key is picked up
    pipeline = build_pipeline(config, credentials)

    progress_bar = st.progress(0.0)
    status_container = st.empty()

    def on_status(event: StatusEvent) -> None:
        if event.phase is PipelinePhase.ERRORED:
            return
        status_container.info(event.message)
        if event.progress is not None:
            progress_bar.progress(min(max(event.progress, 0.0), 1.0))

    try:
        result = pipeline.run(target, force_recompute=force, on_status=on_status)
    except AuthenticationFailure as e:
        progress_bar.empty()
        status_container.empty()
        st.session_state.needs_api_key = True
        st.session_state.last_error = e
        return
    except TranscriberError as e:
        progress_bar.empty()
        status_container.empty()
        st.session_state.last_error = e
        return

    progress_bar.progress(1.0)
    st.session_state.result = result
    st.session_state.start_time = 0
    st.session_state.last_error = None
    if result.cached:
        status_container.success("✓ Cached transcript loaded (no API call)")
    else:
        status_container.success("✓ Transcript ready")


def render_sidebar(config: Config, credentials: DotenvCredentialStore) -> None:
    with st.sidebar:
        st.header("⚙️ Settings")
        if credentials.get() and not st.session_state.needs_api_key:
            st.success("✓ OpenAI API key configured")
            if st.button("Change API key"):
                st.session_state.needs_api_key = True
                st.rerun()
        else:
            render_api_key_form(credentials)

        library = MediaLibrary(config, TranscriptStore(config))

        st.divider()
        st.subheader("💾 Storage")
        info = library.storage_info()
        st.caption(f"{info.total_files} videos, {info.human_readable_total}")
        st.caption(f"Location: {config.downloads_dir}")

        st.divider()
        st.subheader("📚 History")
        entries = library.history()
        if not entries:
            st.caption("No downloaded videos yet")
        for i, entry in enumerate(entries):
            marker = "📝" if entry.has_transcript else "📹"
            label = entry.title if len(entry.title) <= 50 else f"{entry.title[:50]}..."
            if st.button(f"{marker} {label}", key=f"history_{i}", use_container_width=True):
                run_pipeline(entry.file_path, force=False)
                st.rerun()


def render_result() -> None:
    result = st.session_state.result
    if result is None:
        return

    st.divider()
    st.subheader(result.media.title)
    st.caption(f"{result.media.source.value} · {result.media.file_path}")

    video_col, transcript_col = st.columns([3, 2])
    with video_col:
        st.video(str(result.media.file_path), start_time=int(st.session_state.start_time))
        if result.record.text:
            with st.expander("Full text"):
                st.write(result.record.text)

    with transcript_col:
        st.markdown("**Transcript** (click a line to jump)")
        if not result.record.segments:
            st.info("No timestamped segments in this transcript.")
        with st.container(height=520):
            for i, segment in enumerate(result.record.segments):
                if st.button(
                    f"[{format_seconds(segment.start)}] {segment.text}",
                    key=f"segment_{i}",
                    use_container_width=True,
                ):
                    st.session_state.start_time = segment.start
                    st.rerun()


def main():
    """Main Streamlit application."""
    st.markdown('<div class="main-header">🎥 Video Transcriber</div>', unsafe_allow_html=True)

    try:
        config = get_config()
    except ValueError as e:
        st.error(f"✗ Configuration Error: {e}")
        st.stop()
    credentials = get_credentials()

    render_sidebar(config, credentials)

    locator = st.text_input(
        "Video URL or path",
        placeholder="https://www.youtube.com/watch?v=... or /path/to/video.mp4",
        help="YouTube or Google Drive URL, or a video file on this machine",
    )
    col1, col2 = st.columns([1, 4])
    with col1:
        process_button = st.button("🚀 Process Video", type="primary", use_container_width=True)
    with col2:
        force = st.checkbox("Re-transcribe even if a cached transcript exists")

    if process_button:
        if not locator.strip():
            st.error("Please enter a video URL or file path")
        elif not credentials.get():
            st.session_state.needs_api_key = True
            st.warning("⚠ Enter your OpenAI API key in the sidebar first.")
        else:
            run_pipeline(locator, force)

    if st.session_state.last_error is not None:
        show_error(st.session_state.last_error)
        if st.session_state.needs_api_key:
            st.warning("The stored API key was rejected and removed. Please enter a new key in the sidebar.")

    render_result()


if __name__ == "__main__":
    main()
