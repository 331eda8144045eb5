"""
Prompts for dynamic follow-up generation.

A follow-up builds on the answer that triggered it:
- Persona decides the register (business vs technical vocabulary)
- The detected signal says what to dig into (quantify pain, timeline, ...)
- Recent exchanges keep the question anchored to the conversation
- Uncovered essential topics give a secondary direction
"""

from typing import List, Optional

PERSONA_REGISTER = {
    "board-executive": "business terms (revenue, growth, ROI); no technical jargon",
    "finance-ops": "business terms (cost, margin, ROI); no technical jargon",
    "product-business": "hybrid: business language with light technical terms",
    "engineering-tech": "technical terms are fine, but avoid unnecessary jargon",
    "it-devops": "technical terms are fine, but avoid unnecessary jargon",
}

DEFAULT_REGISTER = "unknown persona: plain language, explain any technical term"


def get_follow_up_system_prompt(persona: Optional[str] = None) -> str:
    """
    Get system prompt for follow-up generation.

    Args:
        persona: Respondent persona value (e.g. "finance-ops"), if known

    Returns:
        System prompt string
    """
    register = PERSONA_REGISTER.get(persona or "", DEFAULT_REGISTER)

    return f"""You are a senior business consultant running a diagnostic interview about a company's software delivery and AI readiness.

## Your task:
Ask ONE follow-up question that builds on what the respondent just said.

## Rules:
- One question only, never compound ("X and Y?")
- Open-ended, not yes/no
- Reference what they said ("You mentioned ...")
- If they described a problem, ask for a concrete example or a number
- If they mentioned pressure or a deadline, ask about the timeline and who is pushing
- Write in Brazilian Portuguese
- Language register: {register}

## Output:
Generate ONLY the question - no explanations, no quotation marks, just the question itself."""


def get_follow_up_user_prompt(
    question_text: str,
    answer: str,
    signal_category: str,
    signal_keywords: Optional[List[str]] = None,
    signal_reasoning: str = "",
    recent_exchanges: Optional[List[dict]] = None,
    uncovered_topics: Optional[List[str]] = None,
) -> str:
    """
    Get user prompt for follow-up generation.

    Args:
        question_text: The question that was just answered
        answer: The respondent's answer
        signal_category: Detected signal category (e.g. "competition")
        signal_keywords: Evidence keywords found in the answer
        signal_reasoning: Why the signal is worth exploring
        recent_exchanges: Earlier exchanges [{"question": ..., "answer": ...}]
        uncovered_topics: Essential topics not yet discussed

    Returns:
        User prompt string
    """
    prompt_parts = []

    if recent_exchanges:
        prompt_parts.append("Earlier in the conversation:")
        for exchange in recent_exchanges[-3:]:
            prompt_parts.append(f"Interviewer: {exchange['question']}")
            prompt_parts.append(f"Respondent: {exchange['answer']}")
        prompt_parts.append("")

    prompt_parts.append(f"Interviewer: {question_text}")
    prompt_parts.append(f"Respondent: {answer}")
    prompt_parts.append("")

    prompt_parts.append(f"Detected signal: {signal_category}")
    if signal_keywords:
        prompt_parts.append(f"Evidence: {', '.join(signal_keywords)}")
    if signal_reasoning:
        prompt_parts.append(f"Why it matters: {signal_reasoning}")

    if uncovered_topics:
        prompt_parts.append("")
        prompt_parts.append(
            f"Topics not covered yet (use only if natural): {', '.join(uncovered_topics)}"
        )

    prompt_parts.append("")
    prompt_parts.append("Generate a natural follow-up question:")

    return "\n".join(prompt_parts)


def format_question(raw_question: str) -> str:
    """
    Clean up generated question.

    Args:
        raw_question: Raw LLM output

    Returns:
        Cleaned question string (empty if the model returned nothing usable)
    """
    question = raw_question.strip()

    # Remove surrounding quotes if present
    for quote in ('"', "'", "“"):
        if question.startswith(quote) and question[-1:] in (quote, "”"):
            question = question[1:-1].strip()

    # Ensure ends with question mark or appropriate punctuation
    if question and question[-1] not in ".?!":
        question += "?"

    return question
