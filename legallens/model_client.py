"""
Model-prompting collaborator.

Each operation sends the document's canonical text plus a task instruction
to the model and returns HTML whose citation markers carry the exact cited
text in a data-quote attribute. Nothing here inspects the model's answer
beyond pulling the HTML out of the response.
"""

import json
import logging
import re
from typing import Any, Optional, Protocol

from legallens.config import Settings
from legallens.errors import ModelCallFailure

# Google Gemini SDK
try:
    import google.generativeai as genai
except ImportError:
    genai = None

logger = logging.getLogger(__name__)

CITATION_INSTRUCTIONS = """For each citation, add a data-quote attribute to the sup tag containing the exact text from the document being cited, copied verbatim. For example: "<p>The contract is valid until June 1, 2024<sup data-quote="The contract is valid until June 1, 2024">1</sup>.</p>"
Number the citations 1, 2, 3... in the order they appear.
Respond with a JSON object of the form {"html": "<your HTML>"}."""

SUMMARY_PROMPT = """You are a highly skilled legal assistant. Your task is to summarize legal documents.
The user has uploaded a document named "{name}".
Provide a concise summary of its key components (e.g., Parties, Term, Key Obligations, and Risks).
Format your output as clean, semantic HTML using <p> and <h3> tags.
For every piece of information you provide, you MUST cite the relevant part of the document with a superscript number like a footnote.
{citations}

Document: {text}"""

RISKS_PROMPT = """You are a meticulous legal analyst. Analyze the provided document to identify potential legal risks, important obligations, and critical clauses.
For each finding, provide a clear explanation and cite the relevant part of the document.
Structure your output as clean, semantic HTML with <h3> for sections (e.g., "Potential Risks", "Key Clauses") and <p> for descriptions.
{citations}

Document: {text}"""

QUESTION_PROMPT = """You are a legal expert. You will answer questions based ONLY on the provided legal document.
Format your output as clean, semantic HTML using <p> tags.
When you answer, you MUST cite the specific parts of the document that support your answer.
If the document does not answer the question, say so.
{citations}

Question: {question}
Document: {text}"""

TERM_PROMPT = """You are a legal dictionary. The user wants to understand a specific term from a legal document.

Term: "{term}"

First, provide a general definition of the term.
Then, analyze the provided document to see if the term is used or defined specifically within it. If it is, explain how it's used and cite the relevant section.
Format your output as clean, semantic HTML.
{citations}

Document for context: {text}"""

_CODE_FENCE = re.compile(r"^```(?:json|html)?\s*|\s*```$", re.IGNORECASE)


class ModelClient(Protocol):
    """Operations the session controller needs from a model."""

    def generate_summary(self, text: str, name: str) -> str: ...

    def analyze_risks(self, text: str) -> str: ...

    def answer_question(self, text: str, question: str) -> str: ...

    def define_term(self, text: str, term: str) -> str: ...


def truncate_for_prompt(text: str, max_chars: int) -> str:
    """Cut text to max_chars, backing off to the last whitespace."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    cut = text.rfind(" ", 0, max_chars)
    return text[: cut if cut > 0 else max_chars]


def extract_html(raw: str) -> str:
    """
    Pull the HTML out of a model response.

    Accepts {"html": ...} JSON, optionally inside a code fence, and falls
    back to the raw text.
    """
    cleaned = _CODE_FENCE.sub("", (raw or "").strip()).strip()
    if cleaned.startswith("{"):
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError:
            return cleaned
        if isinstance(payload, dict):
            for key in ("html", "summary", "analysis", "answer", "definition"):
                if isinstance(payload.get(key), str):
                    return payload[key].strip()
    return cleaned


class GeminiModelClient:
    """
    ModelClient backed by Google Gemini.

    Args:
        settings: API key, model name and prompt size limit
        model: Pre-built model object with generate_content(); built from
            settings when omitted
    """

    def __init__(self, settings: Settings, model: Optional[Any] = None):
        self.settings = settings
        self._model = model

    @property
    def model(self) -> Any:
        if self._model is None:
            if genai is None:
                raise ModelCallFailure(
                    "google-generativeai not installed. Install with: pip install google-generativeai"
                )
            if not self.settings.gemini_api_key:
                raise ModelCallFailure("GEMINI_API_KEY is not set")
            genai.configure(api_key=self.settings.gemini_api_key)
            self._model = genai.GenerativeModel(
                self.settings.model_name,
                generation_config={"response_mime_type": "application/json"},
            )
        return self._model

    def _run(self, operation: str, prompt: str) -> str:
        try:
            response = self.model.generate_content(prompt)
            raw = response.text
        except ModelCallFailure:
            raise
        except Exception as e:
            logger.warning("Model call failed (%s): %s", operation, e)
            raise ModelCallFailure(f"The model could not complete the {operation}: {e}", operation) from e

        result = extract_html(raw)
        if not result:
            raise ModelCallFailure(f"The model returned an empty {operation}", operation)

        logger.info("Model %s: %d chars of HTML", operation, len(result))
        return result

    def _text(self, text: str) -> str:
        return truncate_for_prompt(text, self.settings.max_prompt_chars)

    def generate_summary(self, text: str, name: str) -> str:
        prompt = SUMMARY_PROMPT.format(name=name, citations=CITATION_INSTRUCTIONS, text=self._text(text))
        return self._run("summary", prompt)

    def analyze_risks(self, text: str) -> str:
        prompt = RISKS_PROMPT.format(citations=CITATION_INSTRUCTIONS, text=self._text(text))
        return self._run("risk analysis", prompt)

    def answer_question(self, text: str, question: str) -> str:
        prompt = QUESTION_PROMPT.format(
            question=question, citations=CITATION_INSTRUCTIONS, text=self._text(text)
        )
        return self._run("answer", prompt)

    def define_term(self, text: str, term: str) -> str:
        prompt = TERM_PROMPT.format(term=term, citations=CITATION_INSTRUCTIONS, text=self._text(text))
        return self._run("definition", prompt)
