"""
DocDecode: Medical Document Explainer
======================================
Streamlit application entry point.

Run with:
    streamlit run app.py
"""

import html
import logging
from typing import Dict, Optional

import streamlit as st

from docdecode.calendar_export import calendar_link
from docdecode.capture import CAMERA, FILE, TEXT, CameraResource, InputSelector
from docdecode.config import Config
from docdecode.errors import (
    CameraUnavailable,
    HistoryError,
    InputReadError,
    MalformedModelResponse,
    NoInputSelected,
)
from docdecode.gemini import GeminiClient
from docdecode.history import HistoryStore
from docdecode.schema import Demographics, GeoPoint
from docdecode.session import AnalysisSession, PremiumContext, State

# ── Page configuration (must be first Streamlit call) ─────────────────────────
st.set_page_config(
    page_title="DocDecode – Discharge Notes Explained",
    page_icon="🩺",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ── Logging ────────────────────────────────────────────────────────────────────
CONFIG = Config.from_env()
logging.basicConfig(level=CONFIG.log_level)
logger = logging.getLogger("docdecode.app")

# ── Custom CSS ─────────────────────────────────────────────────────────────────
CUSTOM_CSS = """
<style>
:root {
    --dd-ink:     #0F172A;
    --dd-blue:    #2563EB;
    --dd-sky:     #E0ECFF;
    --dd-slate:   #64748B;
    --dd-border:  #E2E8F0;
    --dd-success: #16A34A;
}

.dd-header {
    background: linear-gradient(135deg, #1E3A8A 0%, #2563EB 70%, #60A5FA 100%);
    border-radius: 16px;
    padding: 22px 30px;
    margin-bottom: 22px;
    color: #ffffff;
}
.dd-title    { font-size: 2.2rem; font-weight: 800; margin: 0; color: #ffffff; }
.dd-subtitle { font-size: 1rem; opacity: 0.85; margin-top: 4px; }
.dd-badge {
    display: inline-block;
    background: rgba(255,255,255,0.18);
    border: 1px solid rgba(255,255,255,0.5);
    border-radius: 20px;
    padding: 2px 12px;
    font-size: 0.75rem;
    margin-right: 8px;
    margin-top: 8px;
}

.dd-card {
    border: 1px solid var(--dd-border);
    border-radius: 12px;
    padding: 18px 22px;
    margin-bottom: 16px;
}
.dd-card-title {
    font-size: 1.05rem;
    font-weight: 700;
    color: var(--dd-blue);
    margin-bottom: 10px;
}
.dd-slide-topic { font-size: 1.5rem; font-weight: 800; color: var(--dd-ink); }
.dd-bottom-line {
    background: var(--dd-sky);
    border-left: 4px solid var(--dd-blue);
    border-radius: 0 8px 8px 0;
    padding: 10px 14px;
    margin-top: 12px;
}
.dd-muted { color: var(--dd-slate); font-size: 0.85rem; }
</style>
"""
st.markdown(CUSTOM_CSS, unsafe_allow_html=True)


# ── Camera frame source ────────────────────────────────────────────────────────


class _CameraWidget:
    """
    Frame source backed by ``st.camera_input``. The widget is only rendered
    while the stream is held; unmounting it stops the browser's video tracks.
    """

    def read(self) -> bytes:
        shot = st.session_state.get("camera_shot")
        if shot is None:
            raise CameraUnavailable("No photo has been taken yet.")
        return shot.getvalue()

    def stop(self) -> None:
        st.session_state.pop("camera_shot", None)


# ── Lazy-loaded modules ────────────────────────────────────────────────────────


@st.cache_resource(show_spinner=False)
def get_gemini_client(api_key: str, chat_model: str) -> GeminiClient:
    return GeminiClient(api_key=api_key, chat_model=chat_model)


@st.cache_resource(show_spinner="Opening history…")
def get_history_store(db_path: str) -> Optional[HistoryStore]:
    try:
        return HistoryStore(db_path)
    except HistoryError as exc:
        logger.warning("History disabled: %s", exc)
        return None


# ── Session state ──────────────────────────────────────────────────────────────


def _init_state() -> None:
    if "session" not in st.session_state:
        st.session_state.session = AnalysisSession(
            model=get_gemini_client(CONFIG.api_key, CONFIG.chat_model),
            history=get_history_store(CONFIG.db_path),
            selector=InputSelector(CameraResource(_CameraWidget)),
            config=CONFIG,
        )
    defaults = {
        "notice": "",
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v


_init_state()


def _session() -> AnalysisSession:
    return st.session_state.session


# ── Sidebar ────────────────────────────────────────────────────────────────────


def render_sidebar() -> Dict:
    """Render sidebar and return configuration dict."""
    session = _session()
    with st.sidebar:
        st.markdown(
            """
            <div style='text-align:center; padding: 12px 0 20px 0;'>
              <span style='font-size:2.5rem'>🩺</span><br>
              <strong style='font-size:1.2rem; color:#2563EB;'>DocDecode</strong><br>
              <span style='font-size:0.75rem; color:#64748B;'>Your discharge note, in plain words</span>
            </div>
            """,
            unsafe_allow_html=True,
        )

        # ── API Key ─────────────────────────────────────────────────
        st.subheader("🔑 API Configuration")
        gemini_key = st.text_input(
            "Gemini API Key",
            type="password",
            value=CONFIG.api_key,
            help="Get yours at aistudio.google.com",
        )
        session.model = get_gemini_client(gemini_key, CONFIG.chat_model)

        st.divider()

        # ── Premium ─────────────────────────────────────────────────
        st.subheader("⭐ Premium Analysis")
        premium = st.toggle(
            "Enable premium insights",
            value=False,
            key="premium",
            help="Adds demographic comparison, reminders and nearby follow-up care.",
        )
        premium_ctx: Optional[PremiumContext] = None
        if premium:
            age = st.text_input("Age", placeholder="e.g. 58", key="age")
            gender = st.selectbox("Gender", ["female", "male", "non-binary", "prefer not to say"])
            location = st.text_input("City / Region", placeholder="e.g. Austin, TX", key="location")
            share_coords = st.checkbox("Share my coordinates for nearby care", key="share_coords")
            geo = None
            if share_coords:
                lat = st.number_input(
                    "Latitude", min_value=-90.0, max_value=90.0, value=None, format="%.5f", key="lat"
                )
                lng = st.number_input(
                    "Longitude", min_value=-180.0, max_value=180.0, value=None, format="%.5f", key="lng"
                )
                if lat is not None and lng is not None:
                    geo = GeoPoint(latitude=lat, longitude=lng)
                else:
                    st.caption("Enter both coordinates to ground nearby care on your location.")
            demographics = None
            if age.strip() and location.strip():
                demographics = Demographics(age=age.strip(), gender=gender, location=location.strip())
            else:
                st.caption("Enter age and location to unlock the comparative analysis.")
            premium_ctx = PremiumContext(demographics=demographics, geo=geo)

        st.divider()

        # ── History ─────────────────────────────────────────────────
        st.subheader("🕘 History")
        entries = session.history_entries()
        if not entries:
            st.caption("No past analyses yet.")
        for record in entries:
            label = record.original_input.strip().replace("\n", " ")
            st.markdown(
                f"<p class='dd-muted'>{record.timestamp}</p>", unsafe_allow_html=True
            )
            st.write(label[:80] + ("…" if len(label) > 80 else ""))
            col_load, col_del = st.columns(2)
            with col_load:
                if st.button("Open", key=f"load_{record.id}", use_container_width=True):
                    try:
                        session.load(record)
                    except MalformedModelResponse:
                        st.session_state.notice = "This history entry could not be opened."
                    st.rerun()
            with col_del:
                if st.button("🗑️", key=f"del_{record.id}", use_container_width=True):
                    session.delete_history(record.id)
                    st.rerun()

        st.divider()

        if st.button("🔄 New Analysis", key="new_analysis", use_container_width=True):
            session.reset()
            st.session_state.pop("note_text", None)
            st.rerun()

    return {
        "gemini_key": gemini_key,
        "premium": premium_ctx,
    }


# ── Header ─────────────────────────────────────────────────────────────────────


def render_header(cfg: Dict) -> None:
    tier = "⭐ Premium" if cfg["premium"] is not None else "Standard"
    st.markdown(
        f"""
        <div class="dd-header">
          <h1 class="dd-title">🩺 DocDecode</h1>
          <p class="dd-subtitle">Understand your discharge note, X-ray or lab report in plain language</p>
          <div>
            <span class="dd-badge">Gemini</span>
            <span class="dd-badge">{tier}</span>
          </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


# ── Input ──────────────────────────────────────────────────────────────────────

_MODALITY_LABELS = {TEXT: "📝 Paste text", FILE: "📄 Upload file", CAMERA: "📷 Take photo"}


def _render_text_input(selector: InputSelector) -> None:
    note = st.text_area(
        "Paste your discharge note",
        height=240,
        key="note_text",
        placeholder=(
            "Patient discharged with diagnosis of community-acquired pneumonia. "
            "Take amoxicillin 500mg TID for 7 days. Follow up with PCP in 2 weeks…"
        ),
    )
    selector.set_text(note)


def _render_file_input(selector: InputSelector) -> None:
    uploaded = st.file_uploader(
        "Upload a discharge note, X-ray, lab chart or prescription",
        type=["png", "jpg", "jpeg", "webp", "pdf"],
        help="PDF or Image (JPG, PNG)",
    )
    if uploaded is None:
        selector.clear_file()
        return
    try:
        payload = selector.choose_file(uploaded, uploaded.name, uploaded.type)
    except InputReadError as exc:
        logger.error("Upload unreadable: %s", exc)
        st.error("Could not read that file. Please choose it again.")
        return
    if payload.mime_type.startswith("image/"):
        st.image(payload.raw_bytes(), caption=payload.filename, use_container_width=True)
    else:
        st.success(f"📄 {payload.filename} ready to analyze.")


def _render_camera_input(selector: InputSelector) -> None:
    camera = selector.camera
    if camera is not None and camera.active:
        shot = st.camera_input("Point the camera at your document", key="camera_shot")
        col_use, col_stop = st.columns(2)
        with col_use:
            if st.button("✅ Use this photo", key="use_photo", disabled=shot is None, use_container_width=True):
                try:
                    selector.capture_photo()
                except CameraUnavailable as exc:
                    st.session_state.notice = str(exc)
                st.rerun()
        with col_stop:
            if st.button("✖️ Stop camera", key="stop_camera", use_container_width=True):
                selector.stop_camera()
                st.rerun()
        return

    photo = selector.photo
    if photo is not None and photo.mime_type.startswith("image/"):
        st.image(photo.raw_bytes(), caption="Captured photo", use_container_width=True)
    if photo is not None:
        label = "📷 Retake photo"
    else:
        label = "📷 Start camera"
    if st.button(label, key="start_camera", use_container_width=True):
        try:
            selector.start_camera()
        except CameraUnavailable as exc:
            logger.error("Camera unavailable: %s", exc)
            st.session_state.notice = "Could not access camera. Please check permissions."
        st.rerun()


def render_input(cfg: Dict) -> None:
    session = _session()
    selector = session.selector

    st.markdown('<div class="dd-card">', unsafe_allow_html=True)
    st.markdown('<div class="dd-card-title">📥 Your Document</div>', unsafe_allow_html=True)

    modality = st.radio(
        "Input method",
        [TEXT, FILE, CAMERA],
        format_func=_MODALITY_LABELS.get,
        horizontal=True,
        key="modality",
    )
    selector.select(modality)

    if modality == TEXT:
        _render_text_input(selector)
    elif modality == FILE:
        _render_file_input(selector)
    else:
        _render_camera_input(selector)

    analyse_btn = st.button(
        "🔬 Explain It To Me",
        key="analyze",
        type="primary",
        use_container_width=True,
        disabled=not selector.ready or session.busy,
    )
    if analyse_btn:
        with st.spinner("Reading your document…"):
            try:
                ok = session.submit(premium=cfg["premium"])
            except NoInputSelected as exc:
                st.warning(str(exc))
                ok = False
        if ok:
            st.rerun()

    if session.state == State.FAILED and session.error_message:
        st.error(session.error_message)

    st.markdown("</div>", unsafe_allow_html=True)


# ── Result view ────────────────────────────────────────────────────────────────


def render_slides() -> None:
    session = _session()
    analysis = session.result

    st.markdown('<div class="dd-card">', unsafe_allow_html=True)
    st.markdown('<div class="dd-card-title">🧾 Overview</div>', unsafe_allow_html=True)
    st.markdown(analysis.overallSummary)
    st.markdown("</div>", unsafe_allow_html=True)

    slide = analysis.slides[session.current_slide]
    total = session.slide_count

    st.markdown('<div class="dd-card">', unsafe_allow_html=True)
    st.markdown(
        f"<p class='dd-muted'>Topic {session.current_slide + 1} of {total}</p>",
        unsafe_allow_html=True,
    )
    st.progress((session.current_slide + 1) / total)
    st.markdown(f"<div class='dd-slide-topic'>{html.escape(slide.topic)}</div>", unsafe_allow_html=True)
    st.markdown(slide.content)
    st.markdown(
        f"<div class='dd-bottom-line'><strong>Bottom line:</strong> {html.escape(slide.laymanSummary)}</div>",
        unsafe_allow_html=True,
    )

    col_prev, _, col_next = st.columns([1, 3, 1])
    with col_prev:
        st.button(
            "◀ Previous",
            key="prev_slide",
            on_click=session.previous_slide,
            disabled=session.current_slide == 0,
            use_container_width=True,
        )
    with col_next:
        st.button(
            "Next ▶",
            key="next_slide",
            on_click=session.next_slide,
            disabled=session.current_slide >= total - 1,
            use_container_width=True,
        )
    st.markdown("</div>", unsafe_allow_html=True)


def render_premium_extras() -> None:
    analysis = _session().result

    if analysis.demographicInsights:
        st.markdown('<div class="dd-card">', unsafe_allow_html=True)
        st.markdown('<div class="dd-card-title">👥 For Someone Like You</div>', unsafe_allow_html=True)
        st.markdown(analysis.demographicInsights)
        st.markdown("</div>", unsafe_allow_html=True)

    if analysis.reminders:
        st.markdown('<div class="dd-card">', unsafe_allow_html=True)
        st.markdown('<div class="dd-card-title">📅 Reminders</div>', unsafe_allow_html=True)
        for i, reminder in enumerate(analysis.reminders):
            col_text, col_link = st.columns([3, 1])
            with col_text:
                st.markdown(f"**{reminder.title or 'Reminder'}** · {reminder.date}")
                if reminder.description:
                    st.caption(reminder.description)
            with col_link:
                st.link_button(
                    "Add to calendar",
                    calendar_link(reminder),
                    use_container_width=True,
                )
        st.markdown("</div>", unsafe_allow_html=True)

    if analysis.nearbyFollowUp:
        st.markdown('<div class="dd-card">', unsafe_allow_html=True)
        st.markdown('<div class="dd-card-title">📍 Nearby Follow-up Care</div>', unsafe_allow_html=True)
        for place in analysis.nearbyFollowUp:
            name = f"[{place.name}]({place.uri})" if place.uri else place.name
            st.markdown(f"- **{name}**  \n  {place.address}")
        st.markdown("</div>", unsafe_allow_html=True)


def render_chat() -> None:
    conversation = _session().conversation
    if conversation is None:
        return

    st.markdown('<div class="dd-card">', unsafe_allow_html=True)
    st.markdown('<div class="dd-card-title">💬 Ask a Follow-up Question</div>', unsafe_allow_html=True)

    if not conversation.messages:
        st.caption("e.g. “What does BID mean?” or “Can I take this with food?”")
    for message in conversation.messages:
        with st.chat_message("user" if message.role == "user" else "assistant"):
            st.markdown(message.text)

    query = st.chat_input("Ask about your note…", disabled=conversation.busy)
    if query:
        with st.spinner("Thinking…"):
            conversation.send(query)
        st.rerun()

    st.markdown("</div>", unsafe_allow_html=True)


# ── Main entry point ───────────────────────────────────────────────────────────


def main() -> None:
    cfg = render_sidebar()
    render_header(cfg)

    if st.session_state.notice:
        st.warning(st.session_state.notice)
        st.session_state.notice = ""

    session = _session()
    if session.result is None:
        render_input(cfg)
        return

    col_left, col_right = st.columns([3, 2], gap="large")
    with col_left:
        render_slides()
        render_premium_extras()
    with col_right:
        render_chat()


if __name__ == "__main__":
    main()
