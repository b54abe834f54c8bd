"""
Rule-based categorization of freshly imported marketplace transactions.

Categories and cost centres are looked up by name (exact, then fuzzy) and
created on demand; no ids are hard-coded.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from .exceptions import StorageError
from .models import Channel, EntryDirection
from .storage import MarketplaceStore

logger = structlog.get_logger(__name__)

UPDATE_BATCH_SIZE = 100

CREDIT = EntryDirection.CREDIT
DEBIT = EntryDirection.DEBIT

SALES_COST_CENTER = "Operação – Vendas"
REFUNDS_CATEGORY = ("Estornos / Devoluções", "Custos")


@dataclass(frozen=True)
class CategorizationRule:
    patterns: Tuple[str, ...]
    transaction_type: str
    direction: EntryDirection
    category: str
    category_group: str
    cost_center: str
    priority: int


@dataclass
class Categorization:
    category_id: Optional[str]
    cost_center_id: Optional[str]
    transaction_type: str
    direction: EntryDirection
    rule: str

    @property
    def reconciled(self) -> bool:
        return self.category_id is not None


def _rule(patterns, transaction_type, direction, category, group, cost_center, priority):
    return CategorizationRule(
        tuple(patterns), transaction_type, direction, category, group, cost_center, priority
    )


MERCADO_LIVRE_RULES = [
    _rule(["custo por vender no mercado livre", "custo por vender", "cobrar no mercado livre"],
          "tarifa_marketplace", DEBIT, "Tarifas de Marketplace", "Custos",
          "Marketplace – Mercado Livre", 100),
    _rule(["comissão por venda", "comissão de venda", "comissao"],
          "comissao", DEBIT, "Comissões de Marketplace", "Custos",
          "Marketplace – Mercado Livre", 95),
    _rule(["tarifa por venda", "tarifa de venda"],
          "tarifa_venda", DEBIT, "Tarifas de Marketplace", "Custos",
          "Marketplace – Mercado Livre", 95),
    _rule(["tarifa de assinatura", "tarifa por assinatura", "assinatura mensal", "mensalidade"],
          "assinatura", DEBIT, "Tarifas Fixas / Assinaturas", "Despesas Operacionais",
          "Financeiro / Plataforma", 90),
    _rule(["campanha de publicidade", "publicidade", "anúncios", "ads", "product ads", "mercado ads"],
          "ads", DEBIT, "Marketing / Anúncios", "Despesas Comercial / Marketing", "Marketing", 85),
    _rule(["taxa de parcelamento", "parcelamento", "financiamento"],
          "taxa_parcelamento", DEBIT, "Taxas Financeiras / Juros", "Despesas Financeiras",
          "Financeiro", 80),
    _rule(["juros"],
          "juros", DEBIT, "Taxas Financeiras / Juros", "Despesas Financeiras", "Financeiro", 75),
    _rule(["indisponibilidade logística", "multa logística", "penalidade logística"],
          "multa_logistica", DEBIT, "Multas / Penalidades", "Despesas Operacionais",
          "Operação / Logística", 70),
    _rule(["tarifa de envio", "tarifas do full", "full", "envio full", "frete"],
          "frete", DEBIT, "Frete / Logística", "Custos", "Operação / Logística", 65),
    _rule(["envio"],
          "frete", DEBIT, "Frete / Logística", "Custos", "Operação / Logística", 60),
    _rule(["cancelamento", "cancelado", "cancel"],
          "cancelamento", DEBIT, *REFUNDS_CATEGORY, SALES_COST_CENTER, 70),
    _rule(["devolução", "devolvido", "devolucao"],
          "devolucao", DEBIT, *REFUNDS_CATEGORY, SALES_COST_CENTER, 70),
    _rule(["estorno", "refund", "reversão", "reembolso"],
          "estorno", DEBIT, *REFUNDS_CATEGORY, SALES_COST_CENTER, 70),
    _rule(["antecipação", "antecipacao", "custo de antecipação"],
          "antecipacao", DEBIT, "Taxas de Antecipação", "Despesas Financeiras", "Financeiro", 75),
    _rule(["venda", "pagamento", "liberação", "repasse", "liquidação", "liberado", "transferido"],
          "venda", CREDIT, "Receita de Vendas – Mercado Livre", "Receitas", SALES_COST_CENTER, 10),
]

MERCADO_PAGO_RULES = [
    _rule(["fee", "tarifa", "mercadopago_fee", "mp_fee", "taxa mercado pago"],
          "tarifa_financeira", DEBIT, "Tarifas Financeiras – Mercado Pago",
          "Despesas Financeiras", "Financeiro", 90),
    _rule(["chargeback", "mediação", "disputa", "contestação"],
          "chargeback", DEBIT, "Estornos / Chargeback", "Custos", SALES_COST_CENTER, 85),
    _rule(["estorno", "refund", "devolução", "devolvido"],
          "estorno", DEBIT, *REFUNDS_CATEGORY, SALES_COST_CENTER, 80),
    _rule(["transferência", "transfer", "saque", "withdrawal", "pix enviado"],
          "transferencia", DEBIT, "Transferências Internas", "Outras Receitas / Despesas",
          "Financeiro", 75),
    _rule(["depósito", "deposit", "pix recebido"],
          "deposito", CREDIT, "Transferências Internas", "Outras Receitas / Despesas",
          "Financeiro", 75),
    _rule(["payment", "pagamento", "venda", "approved", "accredited"],
          "venda", CREDIT, "Receita de Vendas – Mercado Pago", "Receitas", SALES_COST_CENTER, 10),
]

SHOPEE_RULES = [
    _rule(["comissão", "commission", "taxa de serviço"],
          "comissao", DEBIT, "Comissões de Marketplace", "Custos", "Marketplace – Shopee", 90),
    _rule(["frete", "envio", "shipping"],
          "frete", DEBIT, "Frete / Logística", "Custos", "Operação / Logística", 85),
    _rule(["voucher", "cupom", "desconto"],
          "desconto", DEBIT, "Descontos Promocionais", "Custos", "Marketing", 80),
    _rule(["ads", "anúncio", "publicidade"],
          "ads", DEBIT, "Marketing / Anúncios", "Despesas Comercial / Marketing", "Marketing", 80),
    _rule(["estorno", "devolução", "refund", "cancelamento"],
          "estorno", DEBIT, *REFUNDS_CATEGORY, SALES_COST_CENTER, 75),
    _rule(["venda", "pedido", "order", "pagamento"],
          "venda", CREDIT, "Receita de Vendas – Shopee", "Receitas", SALES_COST_CENTER, 10),
]

RULES_BY_CHANNEL: Dict[Channel, List[CategorizationRule]] = {
    Channel.MERCADO_LIVRE: MERCADO_LIVRE_RULES,
    Channel.MERCADO_PAGO: MERCADO_PAGO_RULES,
    Channel.SHOPEE: SHOPEE_RULES,
}

SALES_CATEGORY_BY_CHANNEL = {
    Channel.MERCADO_PAGO: "Receita de Vendas – Mercado Pago",
    Channel.SHOPEE: "Receita de Vendas – Shopee",
}
DEFAULT_SALES_CATEGORY = "Receita de Vendas – Mercado Livre"


def match_rule(
    channel: Channel, description: str, direction: EntryDirection
) -> Optional[CategorizationRule]:
    """Highest-priority rule of the channel matching direction and description."""
    text = description.lower().strip()
    rules = sorted(RULES_BY_CHANNEL.get(channel, []), key=lambda r: r.priority, reverse=True)
    for rule in rules:
        if rule.direction is not direction:
            continue
        if any(p.lower() in text for p in rule.patterns):
            return rule
    return None


class _NameIndex:
    """Case-insensitive name -> id lookup with substring fallback."""

    def __init__(self, rows: List[Dict[str, Any]]):
        self.ids: Dict[str, str] = {}
        for row in rows:
            self.add(row["name"], row["id"])

    def add(self, name: str, row_id: str) -> None:
        self.ids[name.lower().strip()] = row_id

    def find(self, name: str) -> Optional[str]:
        key = name.lower().strip()
        if key in self.ids:
            return self.ids[key]
        for existing, row_id in self.ids.items():
            if existing in key or key in existing:
                return row_id
        return None


class AutoCategorizer:
    """Categorizes inserted transactions of one tenant. Caches live per instance."""

    def __init__(self, store: MarketplaceStore, batch_size: int = UPDATE_BATCH_SIZE):
        self.store = store
        self.batch_size = batch_size
        self._categories: Dict[str, _NameIndex] = {}
        self._cost_centers: Dict[str, _NameIndex] = {}

    def _category_id(self, tenant_id: str, name: str, group: str) -> Optional[str]:
        if tenant_id not in self._categories:
            self._categories[tenant_id] = _NameIndex(self.store.list_categories(tenant_id))
        index = self._categories[tenant_id]
        found = index.find(name)
        if found:
            return found
        try:
            row = self.store.create_category(tenant_id, name, group)
        except StorageError as e:
            logger.warning("category_create_failed", name=name, error=str(e))
            return None
        index.add(name, row["id"])
        logger.info("category_created", tenant_id=tenant_id, name=name)
        return row["id"]

    def _cost_center_id(self, tenant_id: str, name: str) -> Optional[str]:
        if tenant_id not in self._cost_centers:
            self._cost_centers[tenant_id] = _NameIndex(self.store.list_cost_centers(tenant_id))
        index = self._cost_centers[tenant_id]
        found = index.find(name)
        if found:
            return found
        try:
            row = self.store.create_cost_center(tenant_id, name)
        except StorageError as e:
            logger.warning("cost_center_create_failed", name=name, error=str(e))
            return None
        index.add(name, row["id"])
        logger.info("cost_center_created", tenant_id=tenant_id, name=name)
        return row["id"]

    def categorize(self, tenant_id: str, row: Dict[str, Any]) -> Optional[Categorization]:
        """Categorization for one stored transaction row, or None if no rule applies."""
        try:
            channel = Channel.from_key(row.get("channel", ""))
        except ValueError:
            return None

        net = float(row.get("net_amount") or 0.0)
        direction_value = row.get("entry_direction")
        if direction_value:
            direction = EntryDirection(direction_value)
        else:
            direction = CREDIT if net >= 0 else DEBIT

        rule = match_rule(channel, row.get("description") or "", direction)
        if rule:
            return Categorization(
                category_id=self._category_id(tenant_id, rule.category, rule.category_group),
                cost_center_id=self._cost_center_id(tenant_id, rule.cost_center),
                transaction_type=rule.transaction_type,
                direction=rule.direction,
                rule=rule.patterns[0],
            )

        if channel in RULES_BY_CHANNEL and direction is CREDIT and net > 0:
            category = SALES_CATEGORY_BY_CHANNEL.get(channel, DEFAULT_SALES_CATEGORY)
            return Categorization(
                category_id=self._category_id(tenant_id, category, "Receitas"),
                cost_center_id=self._cost_center_id(tenant_id, SALES_COST_CENTER),
                transaction_type="venda",
                direction=CREDIT,
                rule="generic_positive_credit",
            )
        return None

    def apply(
        self,
        transaction_ids: List[str],
        tenant_id: str,
        on_batch: Optional[Callable[[], None]] = None,
    ) -> Dict[str, int]:
        """
        Categorize and update the given transactions.

        Per-row failures are counted; a batch whose rows cannot be fetched
        counts every id in it as an error. ``on_batch`` runs after each batch.
        """
        stats = {"categorized": 0, "updated": 0, "errors": 0}
        for start in range(0, len(transaction_ids), self.batch_size):
            batch_ids = transaction_ids[start:start + self.batch_size]
            if on_batch is not None and start:
                on_batch()
            try:
                rows = self.store.fetch_transactions(tenant_id, batch_ids)
            except StorageError as e:
                stats["errors"] += len(batch_ids)
                logger.warning(
                    "categorization_fetch_failed",
                    batch_start=start,
                    batch_size=len(batch_ids),
                    error=str(e),
                )
                continue
            for row in rows:
                try:
                    result = self.categorize(tenant_id, row)
                    if result is None:
                        continue
                    stats["categorized"] += 1
                    fields = {
                        "category_id": result.category_id,
                        "cost_center_id": result.cost_center_id,
                        "transaction_type": result.transaction_type,
                        "entry_direction": result.direction.value,
                    }
                    if result.reconciled:
                        fields["status"] = "reconciled"
                    self.store.update_transaction(row["id"], fields)
                    stats["updated"] += 1
                except StorageError as e:
                    stats["errors"] += 1
                    logger.warning(
                        "categorization_update_failed", transaction_id=row.get("id"), error=str(e)
                    )

        logger.info("auto_categorization_applied", tenant_id=tenant_id, **stats)
        return stats
