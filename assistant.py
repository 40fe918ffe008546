import logging
from typing import Optional

import requests

import config
from database import PRODUCTS, parse_object_id
from errors import UpstreamServiceError

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

PROMPT_TEMPLATE = """You are a helpful product assistant for an e-commerce store.
{context}

User Question: {question}

Please provide a clear, helpful, and concise answer. If the question is about a specific product, use the product information provided.
Keep your response friendly and informative, suitable for customers who may not be tech-savvy."""


def product_context(db, product_id: Optional[str]) -> str:
    oid = parse_object_id(product_id)
    product = db[PRODUCTS].find_one({"_id": oid}) if oid else None
    if not product:
        return ""
    return (
        "Product Information:\n"
        f"- Name: {product.get('name')}\n"
        f"- Description: {product.get('description')}\n"
        f"- Price: ${product.get('price')}\n"
        f"- Category: {product.get('category')}\n"
        f"- Stock: {product.get('stock')} units available\n"
    )


def build_prompt(question: str, context: str = "") -> str:
    return PROMPT_TEMPLATE.format(
        context=context or "You can answer questions about products in general.",
        question=question,
    )


def _extract_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        raise UpstreamServiceError("AI service error: empty response")
    parts = candidates[0].get("content", {}).get("parts", [])
    text = "".join(part.get("text", "") for part in parts).strip()
    if not text:
        raise UpstreamServiceError("AI service error: empty response")
    return text


def ask(db, question: str, product_id: Optional[str] = None) -> str:
    """Answer a shopper's question through the generative-text provider."""
    if not config.GEMINI_API_KEY:
        raise UpstreamServiceError(
            "AI service is not configured. Please set GEMINI_API_KEY in environment variables."
        )

    prompt = build_prompt(question, product_context(db, product_id))
    try:
        response = requests.post(
            GEMINI_URL.format(model=config.GEMINI_MODEL),
            headers={"x-goog-api-key": config.GEMINI_API_KEY},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=config.AI_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.error("AI provider request failed: %s", e)
        raise UpstreamServiceError(f"AI service error: {e}") from e
    except ValueError as e:
        raise UpstreamServiceError("AI service error: invalid response") from e

    return _extract_text(data)
