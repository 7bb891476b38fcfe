"""
QUERIES MODULE - What we ask the ERP for

Purpose:
    1. Describe one ERP query as an immutable QueryPayload
    2. Render it into the gateway's loadRecords JSON body
    3. Build the ordered dataset plan used by the analysis

Data Flow:
    AnalysisFilter → build_analysis_plan() → (DatasetQuery, ...) → client.py
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, Optional, Tuple


@dataclass(frozen=True)
class QueryPayload:
    """One ERP query: entity, fields, criteria and optional ordering."""

    root_entity: str
    fields: Tuple[str, ...]
    criteria: str
    ordering: Optional[str] = None
    include_presentation_fields: bool = True
    # None fetches every row; a page number fetches one server-sized page
    offset_page: Optional[int] = None

    def __post_init__(self):
        if not self.root_entity:
            raise ValueError("root_entity is required")
        if not self.fields:
            raise ValueError(f"{self.root_entity}: at least one field is required")

    def to_request_body(self) -> Dict[str, Any]:
        """
        Render the JSON body expected by CRUDServiceProvider.loadRecords.

        Example:
            {
                "requestBody": {
                    "dataSet": {
                        "rootEntity": "Produto",
                        "includePresentationFields": "N",
                        "offsetPage": None,
                        "disableRowsLimit": True,
                        "entity": {"fieldset": {"list": "CODPROD, DESCRPROD, ATIVO"}},
                        "criteria": {"expression": {"$": "ATIVO = 'S'"}}
                    }
                }
            }
        """
        data_set: Dict[str, Any] = {
            "rootEntity": self.root_entity,
            "includePresentationFields": "S" if self.include_presentation_fields else "N",
            "offsetPage": None if self.offset_page is None else str(self.offset_page),
            "disableRowsLimit": self.offset_page is None,
            "entity": {"fieldset": {"list": ", ".join(self.fields)}},
            "criteria": {"expression": {"$": self.criteria}},
        }
        if self.ordering:
            data_set["ordering"] = {"expression": {"$": self.ordering}}

        return {"requestBody": {"dataSet": data_set}}


@dataclass(frozen=True)
class DatasetQuery:
    """One step of the analysis plan: snapshot dataset name + its query."""

    name: str
    payload: QueryPayload


# =========================
# Field lists
# =========================
LEAD_FIELDS = (
    "CODLEAD", "NOME", "DESCRICAO", "VALOR", "CODESTAGIO", "DATA_VENCIMENTO",
    "TIPO_TAG", "COR_TAG", "CODPARC", "CODFUNIL", "CODUSUARIO", "ATIVO",
    "DATA_CRIACAO", "DATA_ATUALIZACAO", "STATUS_LEAD", "MOTIVO_PERDA",
    "DATA_CONCLUSAO",
)
ACTIVITY_FIELDS = (
    "CODATIVIDADE", "CODLEAD", "TIPO", "DESCRICAO", "DATA_HORA", "DATA_INICIO",
    "DATA_FIM", "CODUSUARIO", "DADOS_COMPLEMENTARES", "COR", "ORDEM", "ATIVO",
    "STATUS",
)
FUNNEL_FIELDS = (
    "CODFUNIL", "NOME", "DESCRICAO", "COR", "ATIVO", "DATA_CRIACAO",
    "DATA_ATUALIZACAO",
)
FUNNEL_STAGE_FIELDS = ("CODESTAGIO", "CODFUNIL", "NOME", "ORDEM", "COR", "ATIVO")
ORDER_FIELDS = ("NUNOTA", "CODPARC", "CODVEND", "VLRNOTA", "DTNEG")
PRODUCT_FIELDS = ("CODPROD", "DESCRPROD", "ATIVO")
CLIENT_FIELDS = ("CODPARC", "NOMEPARC", "CGC_CPF", "CLIENTE", "ATIVO")
LEAD_PRODUCT_FIELDS = (
    "CODITEM", "CODLEAD", "CODPROD", "DESCRPROD", "QUANTIDADE", "VLRUNIT",
    "VLRTOTAL", "ATIVO", "DATA_INCLUSAO",
)


# =========================
# Helpers
# =========================
def to_erp_date(iso_date: str) -> str:
    """
    Convert an ISO date to the ERP's native DD/MM/YYYY text.

    Example:
        "2024-01-31" -> "31/01/2024"
    """
    parsed = date.fromisoformat(iso_date)
    return parsed.strftime("%d/%m/%Y")


def quote_literal(value: str) -> str:
    """Escape a user supplied value for use inside '...' in a criteria string."""
    return value.replace("'", "''")


# =========================
# Analysis plan
# =========================
def build_leads_query(date_start: str, date_end: str, user_id: int, is_admin: bool) -> QueryPayload:
    criteria = (
        f"DATA_CRIACAO BETWEEN '{date_start}' AND '{date_end}' AND ATIVO = 'S'"
    )
    # Non-admin users only see their own leads
    if not is_admin:
        criteria += f" AND CODUSUARIO = {int(user_id)}"

    return QueryPayload(root_entity="AD_LEADS", fields=LEAD_FIELDS, criteria=criteria)


def build_analysis_plan(
    date_start: str, date_end: str, user_id: int, is_admin: bool
) -> Tuple[DatasetQuery, ...]:
    """
    Build the ordered list of dataset queries for one analysis.

    The plan runs one query at a time, in this order. Dates must already be
    in ERP format (see to_erp_date).

    Args:
        date_start: Start date, DD/MM/YYYY
        date_end: End date, DD/MM/YYYY
        user_id: Dashboard user (ERP CODUSUARIO)
        is_admin: Admins see every user's leads

    Returns:
        Tuple of DatasetQuery, in execution order
    """
    return (
        DatasetQuery(
            "leads", build_leads_query(date_start, date_end, user_id, is_admin)
        ),
        DatasetQuery(
            "activities",
            QueryPayload(
                root_entity="AD_ADLEADSATIVIDADES",
                fields=ACTIVITY_FIELDS,
                criteria=(
                    f"ATIVO = 'S' AND (DATA_HORA BETWEEN '{date_start}' AND '{date_end}' "
                    f"OR DATA_HORA IS NULL)"
                ),
            ),
        ),
        DatasetQuery(
            "funnels",
            QueryPayload(root_entity="AD_FUNIS", fields=FUNNEL_FIELDS, criteria="ATIVO = 'S'"),
        ),
        DatasetQuery(
            "funnel_stages",
            QueryPayload(
                root_entity="AD_FUNISESTAGIOS",
                fields=FUNNEL_STAGE_FIELDS,
                criteria="ATIVO = 'S'",
            ),
        ),
        DatasetQuery(
            "orders",
            QueryPayload(
                root_entity="CabecalhoNota",
                fields=ORDER_FIELDS,
                criteria=(
                    f"TIPMOV = 'P' AND DTNEG BETWEEN TO_DATE('{date_start}', 'DD/MM/YYYY') "
                    f"AND TO_DATE('{date_end}', 'DD/MM/YYYY')"
                ),
                ordering="DTNEG DESC, NUNOTA DESC",
            ),
        ),
        DatasetQuery(
            "products",
            QueryPayload(
                root_entity="Produto",
                fields=PRODUCT_FIELDS,
                criteria="ATIVO = 'S'",
                include_presentation_fields=False,
            ),
        ),
        DatasetQuery(
            "clients",
            QueryPayload(
                root_entity="Parceiro",
                fields=CLIENT_FIELDS,
                criteria="CLIENTE = 'S' AND ATIVO = 'S'",
                include_presentation_fields=False,
            ),
        ),
    )


def build_lead_products_query(lead_ids: Iterable[Any]) -> QueryPayload:
    """
    Query the products attached to the given leads.

    Args:
        lead_ids: CODLEAD values of the leads already fetched

    Example:
        build_lead_products_query(["1", "2"]).criteria
        -> "CODLEAD IN (1,2) AND ATIVO = 'S'"
    """
    ids = ",".join(str(lead_id) for lead_id in lead_ids)
    return QueryPayload(
        root_entity="AD_ADLEADSPRODUTOS",
        fields=LEAD_PRODUCT_FIELDS,
        criteria=f"CODLEAD IN ({ids}) AND ATIVO = 'S'",
    )


def build_client_search_query(
    search: str, seller_code: Optional[int] = None, page: int = 0
) -> QueryPayload:
    """Active clients whose name or document matches the search text, one page at a time."""
    text = quote_literal(search.strip())
    criteria = (
        f"CLIENTE = 'S' AND ATIVO = 'S' AND "
        f"(UPPER(NOMEPARC) LIKE '%{text.upper()}%' OR CGC_CPF LIKE '%{text}%')"
    )
    if seller_code is not None:
        criteria += f" AND CODVEND = {int(seller_code)}"

    return QueryPayload(
        root_entity="Parceiro",
        fields=CLIENT_FIELDS + ("CODVEND",),
        criteria=criteria,
        ordering="NOMEPARC",
        include_presentation_fields=False,
        offset_page=page,
    )
