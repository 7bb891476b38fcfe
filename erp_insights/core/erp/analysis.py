import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from erp_insights.core.cache import Cache
from erp_insights.core.erp import mapper
from erp_insights.core.erp.client import RequestExecutor
from erp_insights.core.erp.mapper import MappedRecord
from erp_insights.core.erp.queries import (
    DatasetQuery,
    build_analysis_plan,
    build_lead_products_query,
    to_erp_date,
)
from erp_insights.core.schemas import AnalysisFilter, AnalysisMetrics, AnalysisSnapshot


# -----------------------------------------------------------------------------
# ANALYSIS MODULE - Orchestration
# Purpose: run the dataset plan against the ERP, map everything, compute metrics
# and cache the finished snapshot.
# Dataset queries run one after another, never concurrently.
# -----------------------------------------------------------------------------


logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 30 * 60


class DatasetStatus(Enum):
    """Outcome of one dataset query."""

    FETCHED = "fetched"
    FAILED = "failed"
    SKIPPED = "skipped"


def parse_amount(value: Any) -> Decimal:
    """
    Read a monetary value from the ERP, falling back to zero.

    Example:
        "100.50" -> Decimal("100.50")
        "not-a-number" -> Decimal("0")
        None -> Decimal("0")
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")

    # "NaN" and "Infinity" parse fine but are not amounts
    if not amount.is_finite():
        return Decimal("0")
    return amount


def compute_metrics(datasets: Dict[str, List[MappedRecord]]) -> AnalysisMetrics:
    """
    Derive the scalar metrics of a snapshot.

    Args:
        datasets: Dataset name -> mapped records

    Returns:
        Record counts per dataset and the summed order value (VLRNOTA)
    """
    orders = datasets.get("orders", [])
    total_order_value = sum((parse_amount(order.get("VLRNOTA")) for order in orders), Decimal("0"))

    return AnalysisMetrics(
        total_leads=len(datasets.get("leads", [])),
        total_lead_products=len(datasets.get("lead_products", [])),
        total_funnels=len(datasets.get("funnels", [])),
        total_funnel_stages=len(datasets.get("funnel_stages", [])),
        total_activities=len(datasets.get("activities", [])),
        total_orders=len(orders),
        total_products=len(datasets.get("products", [])),
        total_clients=len(datasets.get("clients", [])),
        total_order_value=float(total_order_value),
    )


def analysis_cache_key(user_id: int, analysis_filter: AnalysisFilter) -> str:
    return f"analysis:{user_id}:{analysis_filter.date_start}:{analysis_filter.date_end}"


class AggregationOrchestrator:
    """Builds (or serves from cache) one AnalysisSnapshot per user and date range."""

    def __init__(
        self,
        executor: RequestExecutor,
        cache: Cache,
        query_url: str,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ):
        self.executor = executor
        self.cache = cache
        self.query_url = query_url
        self.cache_ttl_seconds = cache_ttl_seconds

    async def fetch(
        self, analysis_filter: AnalysisFilter, user_id: int, is_admin: bool = False
    ) -> AnalysisSnapshot:
        """
        Return the analysis snapshot for a user and date range.

        A cached snapshot is returned as is, without touching the ERP.
        Otherwise every dataset of the plan is queried one at a time. A failing
        dataset becomes an empty list; only when all of them fail does the
        last error propagate.

        Args:
            analysis_filter: ISO date range
            user_id: Dashboard user (ERP CODUSUARIO)
            is_admin: Admins see the leads of every user

        Returns:
            The snapshot (fresh or cached)
        """
        cache_key = analysis_cache_key(user_id, analysis_filter)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"[User {user_id}] Returning analysis from cache ({cache_key})")
            return AnalysisSnapshot.model_validate(cached)

        started = time.monotonic()
        logger.info(
            f"[User {user_id}] Fetching analysis from the ERP "
            f"({analysis_filter.date_start} to {analysis_filter.date_end})"
        )

        date_start = to_erp_date(analysis_filter.date_start)
        date_end = to_erp_date(analysis_filter.date_end)
        plan = build_analysis_plan(date_start, date_end, user_id, is_admin)

        datasets, failed = await self._run_plan(plan, user_id)

        # Not failure tolerant: it only runs once the leads query succeeded
        datasets["lead_products"] = await self._fetch_lead_products(
            datasets["leads"], user_id
        )

        metrics = compute_metrics(datasets)
        snapshot = AnalysisSnapshot(
            **datasets,
            filter=analysis_filter,
            timestamp=datetime.now(timezone.utc).isoformat(),
            metrics=metrics,
            failed_datasets=failed,
        )

        await self.cache.set(
            cache_key, snapshot.model_dump(mode="json"), self.cache_ttl_seconds
        )
        logger.info(
            f"[User {user_id}] Analysis built in {time.monotonic() - started:.2f}s "
            f"and cached for {self.cache_ttl_seconds}s: "
            f"{metrics.total_leads} leads, {metrics.total_orders} orders, "
            f"order value {metrics.total_order_value:.2f}"
        )
        return snapshot

    async def _run_plan(
        self, plan: Sequence[DatasetQuery], user_id: int
    ) -> Tuple[Dict[str, List[MappedRecord]], List[str]]:
        datasets: Dict[str, List[MappedRecord]] = {}
        failed: List[str] = []
        last_error: Optional[Exception] = None

        for step in plan:
            status, records, error = await self._fetch_dataset(step, user_id)
            datasets[step.name] = records
            if status == DatasetStatus.FAILED:
                failed.append(step.name)
                last_error = error

        if plan and len(failed) == len(plan):
            logger.error(f"[User {user_id}] Every dataset query failed")
            raise last_error

        return datasets, failed

    async def _fetch_dataset(
        self, step: DatasetQuery, user_id: int
    ) -> Tuple[DatasetStatus, List[MappedRecord], Optional[Exception]]:
        logger.info(f"[User {user_id}] Fetching {step.name}...")
        try:
            response = await self.executor.execute(self.query_url, step.payload)
        except Exception as error:
            logger.error(f"[User {user_id}] Failed to fetch {step.name}: {error}")
            return DatasetStatus.FAILED, [], error

        records = mapper.map_response(response)
        logger.info(f"[User {user_id}] {step.name}: {len(records)} records mapped")
        return DatasetStatus.FETCHED, records, None

    async def _fetch_lead_products(
        self, leads: List[MappedRecord], user_id: int
    ) -> List[MappedRecord]:
        lead_ids = [lead["CODLEAD"] for lead in leads if lead.get("CODLEAD") is not None]
        if not lead_ids:
            logger.info(
                f"[User {user_id}] lead_products {DatasetStatus.SKIPPED.value}: no leads found"
            )
            return []

        logger.info(f"[User {user_id}] Fetching products of {len(lead_ids)} leads...")
        response = await self.executor.execute(
            self.query_url, build_lead_products_query(lead_ids)
        )
        records = mapper.map_response(response)
        logger.info(f"[User {user_id}] lead_products: {len(records)} records mapped")
        return records
