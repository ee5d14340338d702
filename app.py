"""
Sales Insights Assistant - Streamlit User Interface

Chat page for asking questions about the sales transaction log, with the
current trend-based recommendations, per-recommendation advice and a
month revenue forecast in the sidebar.
"""

import streamlit as st
from datetime import datetime

from sales_insights.core.exceptions import ConfigurationError
from sales_insights.core.models import MONTH_NAMES
from sales_insights.utils.app_utils import create_query_service

CLIENT_ADDRESS = "streamlit"

# Page configuration
st.set_page_config(
    page_title="Sales Insights Assistant",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Custom CSS for better styling
st.markdown("""
<style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        color: #1f77b4;
        margin-bottom: 0.5rem;
    }
    .sub-header {
        font-size: 1.2rem;
        color: #666;
        margin-bottom: 2rem;
    }
</style>
""", unsafe_allow_html=True)


def initialize_session_state():
    """Initialize Streamlit session state variables."""
    if 'service' not in st.session_state:
        st.session_state.service = create_query_service()

    if 'messages' not in st.session_state:
        st.session_state.messages = []


def display_header():
    """Display the application header."""
    st.markdown('<div class="main-header">📊 Sales Insights Assistant</div>', unsafe_allow_html=True)
    st.markdown(
        '<div class="sub-header">Ask about products, store locations and months in plain language</div>',
        unsafe_allow_html=True
    )


def display_sidebar():
    """Display the sidebar with the current recommendations."""
    with st.sidebar:
        st.header("💡 Recommendations")

        if st.button("🔄 Refresh", use_container_width=True):
            st.session_state.pop("recommendations", None)

        if "recommendations" not in st.session_state:
            with st.spinner("Analyzing trends..."):
                st.session_state.recommendations = st.session_state.service.recommendations()

        result = st.session_state.recommendations
        if result.status_code != 200:
            st.error(result.body.get("error", "Recommendations are unavailable."))
            return

        recommendations = result.body.get("recommendations", [])
        if not recommendations:
            st.info("Not enough monthly history for recommendations yet.")
            return

        for i, rec in enumerate(recommendations):
            label = rec["action"].replace("_", " ").title()
            with st.expander(f"{rec['target']} ({label})"):
                st.markdown(f"**{rec['metric'].replace('_', ' ')}:** {rec['value']}")
                if rec.get("benchmark"):
                    st.caption(rec["benchmark"])
                st.write(rec["impact"])
                if rec.get("note"):
                    st.caption(rec["note"])
                if st.button("Get Advice", key=f"advice_{i}", use_container_width=True):
                    with st.spinner("Generating advice..."):
                        advice = st.session_state.service.advice(
                            {"recommendation": rec}, client_address=CLIENT_ADDRESS
                        )
                    if advice.status_code == 200:
                        st.markdown(advice.body["answer"])
                    else:
                        st.error(advice.body["error"])


def display_forecast():
    """Display the month revenue forecast widget."""
    st.header("🔮 Revenue Forecast")

    today = datetime.now()
    month = st.selectbox("Month", MONTH_NAMES, index=today.month % 12)
    year = st.number_input("Year", min_value=1900, max_value=9999,
                           value=today.year + (1 if today.month == 12 else 0))

    if st.button("Forecast", use_container_width=True):
        result = st.session_state.service.forecast({"month": month, "year": int(year)})
        if result.status_code == 200:
            st.markdown(result.body["forecast"])
        else:
            st.error(result.body["error"])


def display_chat_history():
    """Display the conversation history."""
    for msg in st.session_state.messages:
        avatar = "👤" if msg["role"] == "user" else "🤖"
        with st.chat_message(msg["role"], avatar=avatar):
            st.markdown(msg["content"])


def process_user_input(user_input: str):
    """Send the question to the query service and display the answer."""
    conversation = [
        {"role": msg["role"], "content": msg["content"]}
        for msg in st.session_state.messages
    ]

    st.session_state.messages.append({
        "role": "user",
        "content": user_input,
        "timestamp": datetime.now()
    })

    with st.chat_message("user", avatar="👤"):
        st.markdown(user_input)

    with st.chat_message("assistant", avatar="🤖"):
        with st.spinner("Thinking..."):
            result = st.session_state.service.handle(
                {"question": user_input, "conversation": conversation},
                client_address=CLIENT_ADDRESS,
            )

        if result.status_code == 200:
            content = result.body["answer"]
            st.markdown(content)
        else:
            content = f"❌ {result.body['error']}"
            st.error(content)

    st.session_state.messages.append({
        "role": "assistant",
        "content": content,
        "timestamp": datetime.now()
    })


def display_example_queries():
    """Display example queries."""
    st.subheader("💡 Example Queries")

    examples = [
        "What are the top 3 products in December 2024?",
        "Which store has the highest average order value?",
        "Which products should I cut?",
        "How can I improve sales?"
    ]

    cols = st.columns(len(examples))
    for i, example in enumerate(examples):
        with cols[i]:
            if st.button(example, key=f"example_{i}", use_container_width=True):
                process_user_input(example)
                st.rerun()


def main():
    """Main application function."""
    display_header()

    try:
        initialize_session_state()
    except ConfigurationError as e:
        st.error(f"⚠️ {e}")
        st.caption("Set the missing values in your .env file and restart the app.")
        return

    display_sidebar()
    with st.sidebar:
        display_forecast()

    if not st.session_state.messages:
        display_example_queries()

    display_chat_history()

    user_input = st.chat_input("Ask a question about your sales...")

    if user_input:
        process_user_input(user_input)
        st.rerun()

    # Footer
    st.divider()
    st.caption("Sales Insights Assistant | Powered by GenAI")


if __name__ == "__main__":
    main()
