# kb_discovery/discovery_results.py

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from kb_discovery.entities import DiscoveryResult, ProductWithQuestions, mint_id, now_iso
from kb_discovery.errors import MissingFields
from kb_discovery.record_store import DISCOVERY_RESULTS, RecordStore

logger = logging.getLogger("kb_discovery")

DEFAULT_LIMIT = 100


def _sort_key(result: DiscoveryResult) -> float:
    try:
        return datetime.fromisoformat(result.timestamp.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


class DiscoveryResultRepository:
    """
    Append-only log of discovery sessions. Records are never updated in place.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def _load(self) -> List[DiscoveryResult]:
        return self.store.read_records(DISCOVERY_RESULTS, DiscoveryResult)

    def create_result(
        self,
        customer_name: str,
        project_name: str,
        product_id: str,
        product_name: str,
        answers: Dict[str, str],
        generated_answers: Optional[Dict[str, str]] = None,
        timestamp: Optional[str] = None,
    ) -> str:
        """
        Appends a result and returns its id. An empty `answers` map is accepted; answer
        keys are not checked against the product's questions.
        """
        if not customer_name or not project_name or not product_id or not product_name or answers is None:
            raise MissingFields("Missing required fields")

        result = DiscoveryResult(
            id=mint_id("discovery"),
            customer_name=customer_name,
            project_name=project_name,
            product_id=product_id,
            product_name=product_name,
            answers=dict(answers),
            generated_answers=dict(generated_answers) if generated_answers is not None else None,
            timestamp=timestamp or now_iso(),
        )
        self.store.update(
            DISCOVERY_RESULTS,
            [],
            lambda results: results + [result.model_dump()],
        )
        logger.info(f"[RESULTS] Saved {result.id} for {customer_name}/{project_name}")
        return result.id

    def list_results(self, limit: int = DEFAULT_LIMIT, offset: int = 0) -> List[DiscoveryResult]:
        limit = DEFAULT_LIMIT if limit is None or limit <= 0 else limit
        offset = 0 if offset is None or offset < 0 else offset
        # ties keep the most recently appended first
        indexed = list(enumerate(self._load()))
        indexed.sort(key=lambda pair: (_sort_key(pair[1]), pair[0]), reverse=True)
        return [r for _, r in indexed[offset:offset + limit]]

    def get_result(self, result_id: str) -> Optional[DiscoveryResult]:
        return next((r for r in self._load() if r.id == result_id), None)

    def delete_result(self, result_id: str) -> bool:
        results = self._load()
        remaining = [r for r in results if r.id != result_id]
        if len(remaining) == len(results):
            return False
        self.store.write(DISCOVERY_RESULTS, [r.model_dump() for r in remaining])
        return True


# -----------------------
# Export bundles
# -----------------------

def _export_filename(kind: str, customer_name: str, project_name: str) -> str:
    return f"{kind}-{customer_name.strip()}-{project_name.strip()}-{int(time.time() * 1000)}.json"


def build_answers_export(
    product: ProductWithQuestions,
    customer_name: str,
    project_name: str,
    answers: Dict[str, str],
) -> dict:
    if not customer_name.strip() or not project_name.strip():
        raise MissingFields("Please fill in Customer Name and Project Name before exporting.")
    return {
        "filename": _export_filename("discovery", customer_name, project_name),
        "data": {
            "customerName": customer_name.strip(),
            "projectName": project_name.strip(),
            "product": product.name,
            "timestamp": now_iso(),
            "discoveryResults": [
                {
                    "question": q.question,
                    "category": q.category,
                    "answer": answers.get(q.id, ""),
                }
                for q in product.questions
            ],
        },
    }


def build_generated_export(
    product: ProductWithQuestions,
    customer_name: str,
    project_name: str,
    answers: Dict[str, str],
    generated_answers: Dict[str, str],
) -> dict:
    if not customer_name.strip() or not project_name.strip() or not generated_answers:
        raise MissingFields("Please generate answers first before exporting.")
    return {
        "filename": _export_filename("answers", customer_name, project_name),
        "data": {
            "customerName": customer_name.strip(),
            "projectName": project_name.strip(),
            "product": product.name,
            "timestamp": now_iso(),
            "results": [
                {
                    "question": q.question,
                    "category": q.category,
                    "answer": answers.get(q.id, ""),
                    "generatedAnswer": generated_answers.get(q.id, ""),
                }
                for q in product.questions
            ],
        },
    }
