"""
Account/Card Resolver

Decides which account or credit card each approved candidate belongs to:
1. An explicit destination chosen by the user wins.
2. Otherwise the detected bank name is matched against the user's
   accounts (account-sourced) or cards (card-sourced): substring in
   either direction on normalized names, first entity in insertion
   order wins.
3. Otherwise a new entity is created with default values.

DESIGN DECISION: Failing to resolve never raises. An extra low-confidence
account is easier to fix than a transaction with no owner. Entities
created during a batch join the index immediately, so later candidates
of the same batch resolve to them instead of creating another one.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from extrato.categorization.taxonomy import normalize_text
from extrato.config import ImportSettings
from extrato.models.ledger import Account, CreditCard, SourceType
from extrato.models.statement import CandidateTransaction, StatementMetadata
from extrato.services.storage.interface import ACCOUNTS, CREDIT_CARDS, DocumentStore


logger = structlog.get_logger(__name__)

DEFAULT_CARD_NAME = "Cartão Importado"
DEFAULT_ACCOUNT_NAME = "Conta Importada"


class ResolutionError(Exception):
    """An explicit destination names an account or card that does not exist."""

    def __init__(self, destination_id: str):
        self.destination_id = destination_id
        super().__init__(f"Unknown destination account or card: {destination_id}")


@dataclass
class Resolution:
    """Where a candidate goes."""
    entity_id: str
    collection: str  # ACCOUNTS or CREDIT_CARDS
    created: bool = False

    @property
    def is_account(self) -> bool:
        return self.collection == ACCOUNTS


@dataclass
class _Index:
    """Known entities of one kind, in insertion order: id -> normalized name."""
    names: dict[str, str] = field(default_factory=dict)

    def add(self, entity_id: str, name: str) -> None:
        self.names[entity_id] = normalize_text(name)

    def match(self, detected: str) -> Optional[str]:
        if not detected:
            return None
        for entity_id, known in self.names.items():
            if known and (detected in known or known in detected):
                return entity_id
        return None


class EntityResolver:
    """
    Resolves candidates of one import batch.

    Call load() once, then resolve() for every candidate in order. The
    entities created along the way are in new_accounts / new_cards and
    must be written in the same batch as the transactions.
    """

    def __init__(self, store: DocumentStore, settings: Optional[ImportSettings] = None):
        self._store = store
        self.settings = settings or ImportSettings()
        self._accounts = _Index()
        self._cards = _Index()
        self.new_accounts: list[Account] = []
        self.new_cards: list[CreditCard] = []
        self._loaded = False

    async def load(self) -> None:
        for doc in await self._store.list_all(ACCOUNTS):
            self._accounts.add(doc.id, str(doc.data.get("name", "")))
        for doc in await self._store.list_all(CREDIT_CARDS):
            self._cards.add(doc.id, str(doc.data.get("name", "")))
        self._loaded = True
        logger.debug(
            "resolver_index_loaded",
            accounts=len(self._accounts.names),
            cards=len(self._cards.names),
        )

    @property
    def account_ids(self) -> list[str]:
        """Ids of every account known to this batch, created ones included."""
        return list(self._accounts.names)

    def resolve(
        self,
        candidate: CandidateTransaction,
        metadata: Optional[StatementMetadata] = None,
        destination_id: Optional[str] = None,
    ) -> Resolution:
        """
        Resolve one candidate.

        Raises:
            ResolutionError: destination_id is set but unknown.
        """
        if not self._loaded:
            raise RuntimeError("EntityResolver.load() must be awaited before resolve()")

        if destination_id:
            if destination_id in self._accounts.names:
                return Resolution(destination_id, ACCOUNTS)
            if destination_id in self._cards.names:
                return Resolution(destination_id, CREDIT_CARDS)
            raise ResolutionError(destination_id)

        metadata = metadata or StatementMetadata()
        detected_name = candidate.bank_name or metadata.bank_name

        if candidate.source_type == SourceType.ACCOUNT:
            name = detected_name or DEFAULT_ACCOUNT_NAME
            match = self._accounts.match(normalize_text(name))
            if match is not None:
                return Resolution(match, ACCOUNTS)
            account = self._create_account(name)
            return Resolution(account.id, ACCOUNTS, created=True)

        name = detected_name or DEFAULT_CARD_NAME
        match = self._cards.match(normalize_text(name))
        if match is not None:
            return Resolution(match, CREDIT_CARDS)
        card = self._create_card(name, metadata)
        return Resolution(card.id, CREDIT_CARDS, created=True)

    def _create_account(self, name: str) -> Account:
        account = Account(
            id=self._store.new_id(ACCOUNTS),
            name=name,
            type=self.settings.default_account_type,
            color=self.settings.default_account_color,
        )
        self._accounts.add(account.id, account.name)
        self.new_accounts.append(account)
        logger.info("account_created_for_import", account_id=account.id, name=name)
        return account

    def _create_card(self, name: str, metadata: StatementMetadata) -> CreditCard:
        card = CreditCard(
            id=self._store.new_id(CREDIT_CARDS),
            name=name,
            limit=metadata.limit if metadata.limit is not None else self.settings.new_card_limit,
            closing_day=metadata.closing_day or self.settings.new_card_closing_day,
            due_day=metadata.due_day or self.settings.new_card_due_day,
            color=self.settings.default_card_color,
        )
        self._cards.add(card.id, card.name)
        self.new_cards.append(card)
        logger.info("card_created_for_import", card_id=card.id, name=name)
        return card
