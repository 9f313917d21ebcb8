import os
from typing import List

import httpx

from app.logging_config import get_logger
from app.services.alert_service import alert_warning

logger = get_logger("knowledge_service")

QDRANT_HOST = os.environ.get("QDRANT_HOST", "http://qdrant:6333")
QDRANT_API_KEY = os.environ.get("QDRANT_API_KEY")
QDRANT_COLLECTION = os.environ.get("QDRANT_COLLECTION", "fincas_knowledge")
BGE_M3_URL = os.environ.get("BGE_M3_URL", "http://bge-m3:80/embed")

DEFAULT_NAMESPACE = "fincas"


def get_embedding(text: str) -> List[float]:
    """Get embedding from BGE-M3 service."""
    with httpx.Client(timeout=30.0) as client:
        response = client.post(BGE_M3_URL, json={"inputs": text})
        if response.status_code != 200:
            raise Exception(f"BGE-M3 error: {response.status_code} - {response.text}")

        data = response.json()
        # TEI returns [[...]] for a single input; other servers wrap it in a dict
        if isinstance(data, list) and len(data) > 0:
            return data[0] if isinstance(data[0], list) else data
        return data.get("embedding") or data.get("embeddings") or data


def search_knowledge(
    query: str,
    namespace: str = DEFAULT_NAMESPACE,
    limit: int = 5,
    score_threshold: float = 0.5,
) -> List[dict]:
    """Top knowledge chunks (policies, FAQs, quick answers) for a query within one namespace."""
    if not query or not query.strip():
        return []

    embedding = get_embedding(query)

    with httpx.Client(timeout=30.0) as client:
        response = client.post(
            f"{QDRANT_HOST}/collections/{QDRANT_COLLECTION}/points/search",
            headers={"api-key": QDRANT_API_KEY} if QDRANT_API_KEY else {},
            json={
                "vector": embedding,
                "limit": limit,
                "score_threshold": score_threshold,
                "filter": {"must": [{"key": "metadata.namespace", "match": {"value": namespace}}]},
                "with_payload": True,
            },
        )

    if response.status_code != 200:
        logger.error(f"Qdrant search error: {response.status_code} - {response.text}")
        alert_warning("Qdrant search failed", {"status": response.status_code, "query": query[:50]})
        return []

    results = []
    for point in response.json().get("result", []):
        payload = point.get("payload", {})
        results.append(
            {
                "score": point.get("score"),
                "text": payload.get("content"),
                "source": payload.get("metadata", {}).get("title"),
                "metadata": payload.get("metadata", {}),
            }
        )

    logger.info(
        "Knowledge search",
        extra={"context": {"namespace": namespace, "results": len(results), "query": query[:30]}},
    )
    return results


def format_knowledge_context(results: List[dict]) -> str:
    """Chunk texts joined for the system prompt. Empty when nothing relevant was found."""
    parts = []
    for r in results or []:
        text = (r.get("text") or "").strip()
        if not text:
            continue
        source = r.get("source")
        parts.append(f"[{source}] {text}" if source else text)
    return "\n\n".join(parts)
