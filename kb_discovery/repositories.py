# kb_discovery/repositories.py

import logging
from typing import Dict, Iterable, List, Optional

from kb_discovery import auth
from kb_discovery.discovery_prompts import DEFAULT_PROMPTS
from kb_discovery.entities import (
    ROLES,
    CategoryMapping,
    DiscoveryQuestion,
    Product,
    ProductWithQuestions,
    PromptSettings,
    QuestionInput,
    User,
    mint_id,
    now_iso,
)
from kb_discovery.errors import DuplicateUsername, NotFound, UserNotFound, ValidationError
from kb_discovery.record_store import (
    CATEGORY_MAPPINGS,
    DISCOVERY_QUESTIONS,
    PRODUCTS,
    PROMPTS,
    USERS,
    RecordStore,
)

logger = logging.getLogger("kb_discovery")


class UserRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def _load(self) -> List[User]:
        return self.store.read_records(USERS, User)

    def _save(self, users: Iterable[User]) -> None:
        self.store.write(USERS, [u.model_dump() for u in users])

    def find_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._load() if u.username == username), None)

    def find_by_id(self, user_id: str) -> Optional[User]:
        return next((u for u in self._load() if u.id == user_id), None)

    def list_users(self) -> List[dict]:
        return [u.public() for u in self._load()]

    def create_user(self, username: str, password: str, role: str = "user", user_id: Optional[str] = None) -> dict:
        if not username or not password:
            raise ValidationError("Username and password are required")
        if role not in ROLES:
            raise ValidationError(f"Invalid role: {role}")

        users = self._load()
        if any(u.username == username for u in users):
            raise DuplicateUsername()

        user = User(
            id=user_id or mint_id("user"),
            username=username,
            password_hash=auth.hash_password(password),
            role=role,
            created_at=now_iso(),
        )
        users.append(user)
        self._save(users)
        logger.info(f"[USERS] Created user '{username}' ({role})")
        return {"id": user.id, "username": user.username, "role": user.role, "created_at": user.created_at}

    def update_password(self, user_id: str, new_password: str) -> None:
        if not new_password:
            raise ValidationError("New password is required")
        users = self._load()
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            raise UserNotFound()
        user.password_hash = auth.hash_password(new_password)
        user.updated_at = now_iso()
        self._save(users)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return auth.verify_password(password, password_hash)

    def delete_user(self, user_id: str, acting_user_id: Optional[str] = None) -> None:
        """
        Removes a user. When `acting_user_id` is given, deleting oneself is refused.
        """
        if acting_user_id is not None and acting_user_id == user_id:
            raise ValidationError("You cannot delete your own account")
        users = self._load()
        remaining = [u for u in users if u.id != user_id]
        if len(remaining) == len(users):
            raise UserNotFound()
        self._save(remaining)
        logger.info(f"[USERS] Deleted user {user_id}")


class CategoryMappingRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def _load(self) -> List[CategoryMapping]:
        return self.store.read_records(CATEGORY_MAPPINGS, CategoryMapping)

    def _save(self, mappings: Iterable[CategoryMapping]) -> None:
        self.store.write(CATEGORY_MAPPINGS, [m.model_dump() for m in mappings])

    def list_mappings(self) -> List[CategoryMapping]:
        return self._load()

    def get_mapping(self, category: str) -> Optional[CategoryMapping]:
        return next((m for m in self._load() if m.category == category), None)

    def create_mapping(self, category: str, workspace_name: str) -> CategoryMapping:
        """
        Upsert on the category key: any existing mapping for `category` is dropped and a
        fresh one (new id, updated_at=None) takes its place.
        """
        if not category or not workspace_name:
            raise ValidationError("Category and workspace name are required")
        mappings = [m for m in self._load() if m.category != category]
        mapping = CategoryMapping(
            id=mint_id("mapping"),
            category=category,
            workspace_name=workspace_name,
            created_at=now_iso(),
        )
        mappings.append(mapping)
        self._save(mappings)
        return mapping

    def update_mapping(self, category: str, workspace_name: str) -> CategoryMapping:
        if not workspace_name:
            raise ValidationError("Workspace name is required")
        mappings = self._load()
        mapping = next((m for m in mappings if m.category == category), None)
        if mapping is None:
            raise NotFound("Category mapping not found")
        mapping.workspace_name = workspace_name
        mapping.updated_at = now_iso()
        self._save(mappings)
        return mapping

    def delete_mapping(self, category: str) -> None:
        mappings = self._load()
        remaining = [m for m in mappings if m.category != category]
        if len(remaining) == len(mappings):
            raise NotFound("Category mapping not found")
        self._save(remaining)


class QuestionRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def _load(self) -> List[DiscoveryQuestion]:
        return self.store.read_records(DISCOVERY_QUESTIONS, DiscoveryQuestion)

    def _save(self, questions: Iterable[DiscoveryQuestion]) -> None:
        self.store.write(DISCOVERY_QUESTIONS, [q.model_dump() for q in questions])

    def list_all(self) -> List[DiscoveryQuestion]:
        return self._load()

    def list_for_product(self, product_id: str) -> List[DiscoveryQuestion]:
        questions = [q for q in self._load() if q.product_id == product_id]
        return sorted(questions, key=lambda q: q.question_order)

    def replace_for_product(
        self, product_id: str, questions: List[QuestionInput], now: str
    ) -> List[DiscoveryQuestion]:
        """
        Drops every question of `product_id` and inserts `questions` with a dense
        0-based question_order matching submission order.
        """
        kept = [q for q in self._load() if q.product_id != product_id]
        inserted = [
            DiscoveryQuestion(
                id=q.id or mint_id("question"),
                product_id=product_id,
                question=q.question,
                category=q.category,
                question_order=index,
                created_at=now,
            )
            for index, q in enumerate(questions or [])
        ]
        self._save(kept + inserted)
        return inserted

    def delete_for_product(self, product_id: str) -> int:
        questions = self._load()
        kept = [q for q in questions if q.product_id != product_id]
        self._save(kept)
        return len(questions) - len(kept)


class ProductRepository:
    def __init__(self, store: RecordStore, questions: QuestionRepository):
        self.store = store
        self.questions = questions

    def _load(self) -> List[Product]:
        return self.store.read_records(PRODUCTS, Product)

    def _save(self, products: Iterable[Product]) -> None:
        self.store.write(PRODUCTS, [p.model_dump() for p in products])

    def list_products(self) -> List[ProductWithQuestions]:
        by_product: Dict[str, List[DiscoveryQuestion]] = {}
        for q in self.questions.list_all():
            by_product.setdefault(q.product_id, []).append(q)
        return [
            ProductWithQuestions(
                **p.model_dump(),
                questions=sorted(by_product.get(p.id, []), key=lambda q: q.question_order),
            )
            for p in self._load()
        ]

    def get_product(self, product_id: str) -> Optional[ProductWithQuestions]:
        product = next((p for p in self._load() if p.id == product_id), None)
        if product is None:
            return None
        return ProductWithQuestions(**product.model_dump(), questions=self.questions.list_for_product(product_id))

    def create_product(self, name: str, questions: Optional[List[QuestionInput]] = None) -> ProductWithQuestions:
        if not name:
            raise ValidationError("Product name is required")
        now = now_iso()
        product = Product(id=mint_id("product"), name=name, created_at=now)
        products = self._load()
        products.append(product)
        self._save(products)

        inserted = []
        if questions:
            # new product ids are fresh, so submitted question ids are ignored
            fresh = [QuestionInput(question=q.question, category=q.category) for q in questions]
            inserted = self.questions.replace_for_product(product.id, fresh, now)
        return ProductWithQuestions(**product.model_dump(), questions=inserted)

    def update_product(
        self, product_id: str, name: str, questions: Optional[List[QuestionInput]] = None
    ) -> ProductWithQuestions:
        if not name:
            raise ValidationError("Product name is required")
        products = self._load()
        product = next((p for p in products if p.id == product_id), None)
        if product is None:
            raise NotFound("Product not found")

        now = now_iso()
        product.name = name
        product.updated_at = now
        self._save(products)

        inserted = self.questions.replace_for_product(product_id, questions or [], now)
        return ProductWithQuestions(**product.model_dump(), questions=inserted)

    def delete_product(self, product_id: str) -> None:
        products = self._load()
        remaining = [p for p in products if p.id != product_id]
        if len(remaining) == len(products):
            raise NotFound("Product not found")
        self._save(remaining)
        removed = self.questions.delete_for_product(product_id)
        logger.info(f"[PRODUCTS] Deleted product {product_id} and {removed} question(s)")


class PromptRepository:
    """
    Singleton {general, sizing, matrix}. Missing or blank keys read as the built-in defaults.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def get_prompts(self) -> PromptSettings:
        stored = self.store.read(PROMPTS, {})
        if not isinstance(stored, dict):
            stored = {}
        merged = {
            key: (stored.get(key) if isinstance(stored.get(key), str) and stored.get(key).strip() else default)
            for key, default in DEFAULT_PROMPTS.items()
        }
        return PromptSettings(**merged)

    def update_prompts(self, prompts: dict) -> PromptSettings:
        if not isinstance(prompts, dict):
            raise ValidationError("Prompts object is required")
        current = self.get_prompts().model_dump()
        for key in DEFAULT_PROMPTS:
            value = prompts.get(key)
            if isinstance(value, str):
                current[key] = value if value.strip() else DEFAULT_PROMPTS[key]
        self.store.write(PROMPTS, current)
        return PromptSettings(**current)

    def ensure_defaults(self) -> bool:
        stored = self.store.read(PROMPTS, {})
        if isinstance(stored, dict) and all(stored.get(key) for key in DEFAULT_PROMPTS):
            return False
        self.store.write(PROMPTS, self.get_prompts().model_dump())
        logger.info("[PROMPTS] Default prompts initialized")
        return True
