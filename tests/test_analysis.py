import httpx
import pytest

from conftest import erp_response
from erp_insights.core.erp.analysis import analysis_cache_key, compute_metrics, parse_amount
from erp_insights.core.erp.errors import AuthError, ErpRequestError
from erp_insights.core.erp.queries import build_analysis_plan, to_erp_date
from erp_insights.core.schemas import AnalysisFilter

JANUARY = AnalysisFilter(date_start="2024-01-01", date_end="2024-01-31")

PLAN_ENTITIES = [
    "AD_LEADS",
    "AD_ADLEADSATIVIDADES",
    "AD_FUNIS",
    "AD_FUNISESTAGIOS",
    "CabecalhoNota",
    "Produto",
    "Parceiro",
]


def seed_erp(fake_erp):
    fake_erp.responses["AD_LEADS"] = erp_response(
        ["CODLEAD", "NOME", "CODUSUARIO"],
        [
            {"CODLEAD": "1", "NOME": "Lead A", "CODUSUARIO": "7"},
            {"CODLEAD": "2", "NOME": "Lead B", "CODUSUARIO": "7"},
        ],
    )
    fake_erp.responses["AD_ADLEADSATIVIDADES"] = erp_response(
        ["CODATIVIDADE", "CODLEAD", "TIPO"],
        [{"CODATIVIDADE": "10", "CODLEAD": "1", "TIPO": "CALL"}],
    )
    fake_erp.responses["AD_FUNIS"] = erp_response(
        ["CODFUNIL", "NOME"], [{"CODFUNIL": "1", "NOME": "Vendas"}]
    )
    fake_erp.responses["AD_FUNISESTAGIOS"] = erp_response(
        ["CODESTAGIO", "CODFUNIL", "NOME"],
        [
            {"CODESTAGIO": "1", "CODFUNIL": "1", "NOME": "Prospect"},
            {"CODESTAGIO": "2", "CODFUNIL": "1", "NOME": "Closing"},
        ],
    )
    fake_erp.responses["CabecalhoNota"] = erp_response(
        ["NUNOTA", "VLRNOTA"],
        [{"NUNOTA": "100", "VLRNOTA": "100.50"}, {"NUNOTA": "99", "VLRNOTA": "not-a-number"}],
    )
    fake_erp.responses["Produto"] = erp_response(
        ["CODPROD", "DESCRPROD"], [{"CODPROD": "5", "DESCRPROD": "Widget"}]
    )
    fake_erp.responses["Parceiro"] = erp_response(
        ["CODPARC", "NOMEPARC"], [{"CODPARC": "3", "NOMEPARC": "Acme"}]
    )
    fake_erp.responses["AD_ADLEADSPRODUTOS"] = erp_response(
        ["CODITEM", "CODLEAD", "VLRTOTAL"], [{"CODITEM": "1", "CODLEAD": "1", "VLRTOTAL": "50"}]
    )


@pytest.mark.asyncio
async def test_fetch_builds_full_snapshot(orchestrator, fake_erp):
    seed_erp(fake_erp)

    snapshot = await orchestrator.fetch(JANUARY, user_id=7, is_admin=False)

    assert [lead["NOME"] for lead in snapshot.leads] == ["Lead A", "Lead B"]
    assert snapshot.lead_products == [{"CODITEM": "1", "CODLEAD": "1", "VLRTOTAL": "50"}]
    assert len(snapshot.activities) == 1
    assert len(snapshot.funnels) == 1
    assert len(snapshot.funnel_stages) == 2
    assert len(snapshot.orders) == 2
    assert snapshot.products == [{"CODPROD": "5", "DESCRPROD": "Widget"}]
    assert snapshot.clients == [{"CODPARC": "3", "NOMEPARC": "Acme"}]
    assert snapshot.financial == []
    assert snapshot.failed_datasets == []
    assert snapshot.filter == JANUARY
    assert snapshot.timestamp

    assert snapshot.metrics.total_leads == 2
    assert snapshot.metrics.total_lead_products == 1
    assert snapshot.metrics.total_funnel_stages == 2
    assert snapshot.metrics.total_orders == 2
    assert snapshot.metrics.total_order_value == 100.50


@pytest.mark.asyncio
async def test_queries_run_in_plan_order(orchestrator, fake_erp):
    """Plan order first, then the lead-products follow-up"""
    seed_erp(fake_erp)

    await orchestrator.fetch(JANUARY, user_id=7)

    assert fake_erp.entities_requested() == PLAN_ENTITIES + ["AD_ADLEADSPRODUTOS"]
    assert fake_erp.criteria_for("AD_ADLEADSPRODUTOS") == "CODLEAD IN (1,2) AND ATIVO = 'S'"


@pytest.mark.asyncio
async def test_non_admin_leads_are_restricted_to_user(orchestrator, fake_erp):
    await orchestrator.fetch(JANUARY, user_id=7, is_admin=False)

    criteria = fake_erp.criteria_for("AD_LEADS")
    assert "CODUSUARIO = 7" in criteria
    assert "DATA_CRIACAO BETWEEN '01/01/2024' AND '31/01/2024'" in criteria


@pytest.mark.asyncio
async def test_admin_sees_every_lead(orchestrator, fake_erp):
    await orchestrator.fetch(JANUARY, user_id=7, is_admin=True)

    assert "CODUSUARIO" not in fake_erp.criteria_for("AD_LEADS")


@pytest.mark.asyncio
async def test_dates_use_erp_format(orchestrator, fake_erp):
    await orchestrator.fetch(JANUARY, user_id=7)

    assert fake_erp.criteria_for("AD_ADLEADSATIVIDADES") == (
        "ATIVO = 'S' AND (DATA_HORA BETWEEN '01/01/2024' AND '31/01/2024' OR DATA_HORA IS NULL)"
    )
    assert "TO_DATE('01/01/2024', 'DD/MM/YYYY')" in fake_erp.criteria_for("CabecalhoNota")
    assert fake_erp.criteria_for("Parceiro") == "CLIENTE = 'S' AND ATIVO = 'S'"


@pytest.mark.asyncio
async def test_failed_dataset_degrades_to_empty(orchestrator, fake_erp):
    """Leads succeed, activities blow up: snapshot still returned"""
    seed_erp(fake_erp)
    fake_erp.responses["AD_ADLEADSATIVIDADES"] = httpx.Response(400, json={"error": "bad"})

    snapshot = await orchestrator.fetch(JANUARY, user_id=7)

    assert len(snapshot.leads) == 2
    assert snapshot.activities == []
    assert snapshot.failed_datasets == ["activities"]
    # The rest of the plan still ran
    assert fake_erp.entities_requested()[:7] == PLAN_ENTITIES


@pytest.mark.asyncio
async def test_transient_failure_degrades_to_empty(orchestrator, fake_erp):
    seed_erp(fake_erp)
    fake_erp.responses["CabecalhoNota"] = httpx.ReadTimeout("query timed out")

    snapshot = await orchestrator.fetch(JANUARY, user_id=7)

    assert snapshot.orders == []
    assert snapshot.metrics.total_order_value == 0
    assert snapshot.failed_datasets == ["orders"]


@pytest.mark.asyncio
async def test_every_dataset_failing_raises_last_error(orchestrator, fake_erp):
    """Identity provider rejects us: no snapshot, an auth error instead"""
    fake_erp.login_responses = [httpx.Response(401) for _ in range(len(PLAN_ENTITIES))]

    with pytest.raises(AuthError):
        await orchestrator.fetch(JANUARY, user_id=7)

    assert fake_erp.query_calls == 0
    assert await orchestrator.cache.get(analysis_cache_key(7, JANUARY)) is None


@pytest.mark.asyncio
async def test_no_leads_skips_lead_products(orchestrator, fake_erp):
    seed_erp(fake_erp)
    fake_erp.responses["AD_LEADS"] = erp_response(["CODLEAD"], [])

    snapshot = await orchestrator.fetch(JANUARY, user_id=7)

    assert snapshot.leads == []
    assert snapshot.lead_products == []
    assert "AD_ADLEADSPRODUTOS" not in fake_erp.entities_requested()


@pytest.mark.asyncio
async def test_lead_products_failure_propagates(orchestrator, fake_erp):
    """The follow-up query is not failure tolerant"""
    seed_erp(fake_erp)
    fake_erp.responses["AD_ADLEADSPRODUTOS"] = httpx.Response(400, json={"error": "bad"})

    with pytest.raises(ErpRequestError):
        await orchestrator.fetch(JANUARY, user_id=7)

    assert await orchestrator.cache.get(analysis_cache_key(7, JANUARY)) is None


@pytest.mark.asyncio
async def test_second_fetch_is_served_from_cache(orchestrator, fake_erp):
    seed_erp(fake_erp)

    first = await orchestrator.fetch(JANUARY, user_id=7)
    calls_after_first = (fake_erp.login_calls, fake_erp.query_calls)

    second = await orchestrator.fetch(JANUARY, user_id=7)

    assert (fake_erp.login_calls, fake_erp.query_calls) == calls_after_first
    assert second.model_dump() == first.model_dump()


@pytest.mark.asyncio
async def test_cache_is_keyed_by_user_and_dates(orchestrator, fake_erp):
    seed_erp(fake_erp)

    await orchestrator.fetch(JANUARY, user_id=7)
    queries_after_first = fake_erp.query_calls

    await orchestrator.fetch(JANUARY, user_id=8)
    assert fake_erp.query_calls > queries_after_first

    queries_after_second = fake_erp.query_calls
    await orchestrator.fetch(
        AnalysisFilter(date_start="2024-02-01", date_end="2024-02-29"), user_id=7
    )
    assert fake_erp.query_calls > queries_after_second


def test_cache_key_format():
    assert analysis_cache_key(7, JANUARY) == "analysis:7:2024-01-01:2024-01-31"


def test_order_value_ignores_non_numeric():
    metrics = compute_metrics(
        {"orders": [{"VLRNOTA": "100.50"}, {"VLRNOTA": "not-a-number"}, {"NUNOTA": "3"}]}
    )

    assert metrics.total_orders == 3
    assert metrics.total_order_value == 100.50
    assert metrics.total_leads == 0


def test_parse_amount():
    assert parse_amount("100.50") == parse_amount(100.5)
    assert parse_amount(" 12 ") == 12
    assert parse_amount("NaN") == 0
    assert parse_amount("Infinity") == 0
    assert parse_amount(None) == 0
    assert parse_amount("") == 0


def test_plan_has_seven_ordered_steps():
    plan = build_analysis_plan("01/01/2024", "31/01/2024", user_id=7, is_admin=False)

    assert [step.name for step in plan] == [
        "leads",
        "activities",
        "funnels",
        "funnel_stages",
        "orders",
        "products",
        "clients",
    ]
    assert [step.payload.root_entity for step in plan] == PLAN_ENTITIES
    assert plan[4].payload.ordering == "DTNEG DESC, NUNOTA DESC"


def test_to_erp_date():
    assert to_erp_date("2024-01-31") == "31/01/2024"
