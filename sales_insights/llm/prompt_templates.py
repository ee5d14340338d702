"""
Structured prompt templates for LLM interactions.

This module provides the system prompts for narrative answers. Every prompt
carries the factual context assembled from the aggregation results and tells
the model to use only those figures.
"""

from typing import Dict, List, Optional


class PromptTemplates:
    """Collection of structured prompt templates."""

    # Narrative prompt for breakdowns and general questions
    NARRATIVE_SYSTEM_PROMPT = """You are a data-driven business analyst for a retail chain. Answer the user's question using ONLY the sales data provided below.

Follow these strict guidelines:
1. ONLY make claims that are directly supported by the data provided
2. Quote figures exactly as given; never estimate or invent numbers
3. Format monetary values as $X,XXX.XX
4. If the data does not answer the question, say so and suggest a question it can answer
5. Keep the answer concise (maximum 250 words) and in business-friendly language

SALES DATA:
{context}"""

    # Advice prompt: same grounding, with recommendations expected
    ADVICE_SYSTEM_PROMPT = """You are a data-driven business analyst for a retail chain. The user is asking for business advice.

Follow these strict guidelines:
1. ONLY make claims that are directly supported by the data provided
2. NEVER make generic recommendations - each recommendation must cite specific data points
3. Quantify all insights with precise numbers from the data
4. Format monetary values as $X,XXX.XX
5. ONLY suggest actions that directly address patterns in the data
6. Prefer the trend-based recommendations listed in the data when they are relevant
7. Keep the answer concise (maximum 300 words)

SALES DATA:
{context}"""

    # Advice on one recommendation target, e.g. a declining product
    TARGET_ADVICE_SYSTEM_PROMPT = """You are a retail analytics expert. Based on this analysis:

Target: {target}
Current Status: {status}

SALES DATA:
{context}

Provide specific recommendations in this format:

1. Promotion Strategy
   - Recommend a promotion approach based on the best performing promotion in the data
   - Set clear targets based on the peak monthly sales in the data
   - Suggest a pricing or discount strategy

2. Timing & Audience
   - Best timing, from the time of day and day of week figures
   - Strongest locations or products to focus on
   - Customer engagement tactics

3. Marketing Focus
   - Specific marketing channels
   - Key messages to highlight
   - Integration with current promotions

ONLY cite figures that appear in the data. Keep recommendations specific, data-driven, and actionable within 30 days."""

    TARGET_ADVICE_REQUEST = "Please provide detailed recommendations for {target} based on the analysis."

    @staticmethod
    def format_target_advice_prompt(context: str, target: str, status: str = "") -> str:
        """
        Format the system prompt for advice on a single recommendation target.

        Args:
            context: Context bundle built from the target's profile
            target: Product, store location or discount code
            status: Impact text of the recommendation, if any

        Returns:
            Formatted prompt string
        """
        return PromptTemplates.TARGET_ADVICE_SYSTEM_PROMPT.format(
            target=target,
            status=status or "No trend recorded",
            context=context or "No data available",
        )

    @staticmethod
    def format_system_prompt(context: str, advice: bool = False) -> str:
        """
        Format the system prompt with the factual context.

        Args:
            context: Context bundle built from metadata, results and recommendations
            advice: Use the business-advice variant

        Returns:
            Formatted prompt string
        """
        template = PromptTemplates.ADVICE_SYSTEM_PROMPT if advice else PromptTemplates.NARRATIVE_SYSTEM_PROMPT
        return template.format(context=context or "No data available")

    @staticmethod
    def format_messages(question: str, history: Optional[List[Dict[str, str]]] = None,
                        max_turns: int = 4) -> List[Dict[str, str]]:
        """
        Build the message list: trailing conversation turns, then the question.

        Args:
            question: User's question
            history: Prior turns as {"role", "content"} dicts, oldest first
            max_turns: Number of trailing turns to keep

        Returns:
            Messages in provider-neutral form
        """
        messages = []
        recent = (history or [])[-max_turns:] if max_turns > 0 else []
        for msg in recent:
            role = msg.get("role", "user")
            if role not in ("user", "assistant"):
                continue
            content = msg.get("content", "")
            if content:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": question})
        return messages
