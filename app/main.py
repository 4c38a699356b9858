"""
Streamlit Frontend for GetAnswer

Photograph an exam question, get a tutor-style answer.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. The user always sees the price before paying
3. Clear error messages in simple language
4. Balance is always visible
5. No hidden charges

The UI holds no credit logic. It shows what the pipeline and the ledger
report:
- User reviews the text read from the photo (and may edit it)
- Credits are charged only when the user asks for the answer
- A failed answer is refunded by the pipeline, not by the UI
"""

import asyncio

import streamlit as st

from getanswer.config import get_settings, validate_all_settings
from getanswer.ledger import CREDIT_PACKS, AD_REWARD_CREDITS, grant_ad_reward, grant_purchase
from getanswer.models.ledger import TransactionKind, TransactionStatus
from getanswer.models.pipeline import ImageHandle, PipelineErrorKind
from getanswer.orchestrator import AppComponents, create_app_components


# Page configuration
st.set_page_config(
    page_title="GetAnswer",
    page_icon="📷",
    layout="centered",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop():
    """One event loop for the session; the ledger's lock lives on it."""
    return asyncio.new_event_loop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_event_loop().run_until_complete(coro)


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    components = create_app_components(use_storage=True)
    run_async(components.ledger.load())
    return components


def main():
    """Main application entry point."""
    components = get_components()

    # Sidebar navigation
    st.sidebar.title("📷 GetAnswer")
    st.sidebar.markdown(
        f'<div class="big-number">{components.ledger.balance}</div>credits',
        unsafe_allow_html=True,
    )
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📷 Ask a Question", "🕘 History", "💳 Credits", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        f"""
        **How to use:**
        1. Upload a photo of the question
        2. Check the text we read
        3. Get the answer ({get_settings().credits.inference_cost} credits)

        A failed answer is always refunded.
        """
    )

    # Route to appropriate page
    if page == "📷 Ask a Question":
        render_ask_page(components)
    elif page == "🕘 History":
        render_history_page(components)
    elif page == "💳 Credits":
        render_credits_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def show_pipeline_error(error):
    """Render a PipelineError with a hint for what to do next."""
    titles = {
        PipelineErrorKind.INSUFFICIENT_CREDITS: "💳 Not Enough Credits",
        PipelineErrorKind.EXTRACTION_FAILED: "📷 Couldn't Read the Photo",
        PipelineErrorKind.NO_TEXT_DETECTED: "🔍 No Text Found",
        PipelineErrorKind.INFERENCE_FAILED: "🤖 No Answer",
        PipelineErrorKind.LEDGER_UNAVAILABLE: "💾 Couldn't Save Your Balance",
    }
    st.markdown(f"""
    <div class="error-box">
        <h4>{titles[error.kind]}</h4>
        <p>{error.message}</p>
    </div>
    """, unsafe_allow_html=True)


def render_ask_page(components: AppComponents):
    """Render the question page."""
    st.title("📷 Ask a Question")

    pipeline = components.pipeline
    if pipeline is None:
        st.warning("Text recognition and AI keys are not configured. See ⚙️ Settings.")
        return

    # Initialize session state
    if "ask_state" not in st.session_state:
        st.session_state.ask_state = "idle"  # idle, reviewing, answered
    if "question_text" not in st.session_state:
        st.session_state.question_text = ""
    if "image_reference" not in st.session_state:
        st.session_state.image_reference = None
    if "outcome" not in st.session_state:
        st.session_state.outcome = None

    app_settings = get_settings().app
    cost = get_settings().credits.inference_cost

    # Step 1: Upload
    uploaded_file = st.file_uploader(
        "Choose a photo of the question",
        type=app_settings.supported_formats_list,
        help="Take a clear, well-lit photo with the whole question in frame",
    )

    if uploaded_file and st.session_state.ask_state == "idle":
        if st.button("🔍 Read Question", type="primary"):
            image = ImageHandle(
                uri=uploaded_file.name,
                content=uploaded_file.getvalue(),
                mime_type=uploaded_file.type,
            )
            with st.spinner("Reading the question..."):
                outcome = run_async(pipeline.extract(image))
            if outcome.ok:
                st.session_state.question_text = outcome.value
                st.session_state.image_reference = image.reference
                st.session_state.ask_state = "reviewing"
                st.rerun()
            else:
                show_pipeline_error(outcome.error)

    # Step 2: Review and pay
    if st.session_state.ask_state == "reviewing":
        st.markdown("---")
        st.subheader("📋 Check the Question")
        question = st.text_area(
            "Edit the text if anything was read wrong",
            value=st.session_state.question_text,
            height=200,
        )

        col1, col2 = st.columns(2)
        with col1:
            can_pay = components.ledger.can_afford(cost)
            if not can_pay:
                st.info("💳 Not enough credits. Visit the Credits page to get more.")
            if st.button(f"✅ Get Answer ({cost} credits)", type="primary", disabled=not can_pay):
                with st.spinner("Thinking..."):
                    outcome = run_async(pipeline.answer_text(
                        question,
                        image_reference=st.session_state.image_reference,
                    ))
                if outcome.ok:
                    st.session_state.outcome = outcome.value
                    st.session_state.ask_state = "answered"
                    st.rerun()
                else:
                    show_pipeline_error(outcome.error)
        with col2:
            if st.button("❌ Cancel"):
                st.session_state.ask_state = "idle"
                st.rerun()

    # Step 3: Answer
    if st.session_state.ask_state == "answered" and st.session_state.outcome:
        outcome = st.session_state.outcome
        st.markdown("---")
        st.subheader("💡 Answer")
        st.markdown(outcome.answer)
        for warning in outcome.warnings:
            st.warning(warning.message)

        if st.button("📷 Ask Another Question"):
            st.session_state.ask_state = "idle"
            st.session_state.outcome = None
            st.rerun()


def render_history_page(components: AppComponents):
    """Render the history page."""
    st.title("🕘 History")

    entries = run_async(components.history.list())
    if not entries:
        st.info("📋 Your answered questions will appear here.")
        return

    if st.button("🗑️ Clear History"):
        run_async(components.history.clear())
        st.rerun()

    for entry in entries:
        with st.expander(f"{entry.timestamp:%d %b %Y %H:%M} · {entry.preview}"):
            st.markdown("**Question**")
            st.text(entry.extracted_text)
            st.markdown("**Answer**")
            st.markdown(entry.answer_text)
            if st.button("Delete", key=f"delete-{entry.id}"):
                run_async(components.history.remove(entry.id))
                st.rerun()


def render_credits_page(components: AppComponents):
    """Render the credits page."""
    st.title("💳 Credits")

    ledger = components.ledger
    st.markdown(
        f'<div class="big-number">{ledger.balance}</div>credits available',
        unsafe_allow_html=True,
    )
    if not ledger.is_reconciled():
        st.warning("Your balance doesn't match your transaction history.")

    st.markdown("### Get More Credits")
    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button(f"🎬 Watch an Ad (+{AD_REWARD_CREDITS})"):
            outcome = run_async(grant_ad_reward(ledger))
            if outcome.ok:
                st.rerun()
            st.error(str(outcome.error))
    for column, (product_id, credits) in zip((col2, col3), CREDIT_PACKS.items()):
        with column:
            if st.button(f"🛒 Buy {credits} Credits", key=product_id):
                outcome = run_async(grant_purchase(ledger, product_id))
                if outcome.ok:
                    st.rerun()
                st.error(str(outcome.error))

    st.markdown("---")
    st.markdown("### Transactions")
    labels = {
        TransactionKind.DEDUCT: "Charged",
        TransactionKind.ADD: "Added",
        TransactionKind.RESTORE: "Refunded",
    }
    rows = [
        {
            "When": tx.timestamp.strftime("%d %b %Y %H:%M"),
            "Type": labels[tx.kind],
            "Credits": tx.amount,
            "Reason": tx.reason,
            "Status": "refunded" if tx.status == TransactionStatus.FAILED else "ok",
        }
        for tx in reversed(ledger.transactions())
    ]
    if rows:
        st.dataframe(rows, use_container_width=True)
    else:
        st.info("No transactions yet.")


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Cloud Vision (Text Recognition)", "vision"),
        ("Gemini (AI)", "gemini"),
        ("Local Storage", "storage"),
        ("Credits", "credits"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    problems = components.audit_logger.warnings()[:10]
    if problems:
        st.markdown("### Recent Problems")
        for event in problems:
            st.warning(f"{event.timestamp:%d %b %H:%M} · {event.description}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
