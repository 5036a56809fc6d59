"""Applies service auto-link rules to client records."""

import asyncio
from collections.abc import Collection, Iterable, Sequence

import structlog

from practice_automation.clients import ClientProfile
from practice_automation.config import get_settings
from practice_automation.engine.concurrency import CancellationToken
from practice_automation.engine.executor import ExecutionDetail, ExecutionResult, ItemStatus
from practice_automation.errors import OperationInProgressError, ScanError
from practice_automation.rules.catalog import SERVICE_LABELS, Service
from practice_automation.rules.matcher import link_rule_applies, services_to_add
from practice_automation.rules.models import Rule, ServiceAutoLinkRule
from practice_automation.store.base import EntityName, EntityStore

logger = structlog.get_logger(__name__)

SERVICES_LABEL = "שירותים"
NOTHING_TO_CHANGE = "כל הלקוחות כבר מעודכנים - לא נדרש שינוי"


def _service_label(service: str) -> str:
    try:
        return SERVICE_LABELS[Service(service)]
    except ValueError:
        return service


def missing_linked_services(
    rules: Iterable[ServiceAutoLinkRule], services: Collection[str], business_type: str | None
) -> list[str]:
    """Services the applicable link rules would add, in rule order.

    Rules are applied in sequence so a service added by one rule can trigger
    the next.
    """
    current = list(services)
    added: list[str] = []
    for rule in rules:
        if not link_rule_applies(rule, current, business_type):
            continue
        for service in services_to_add(rule, current):
            current.append(service)
            added.append(service)
    return added


class ServiceLinkResolver:
    """Adds auto-linked services to every active client that lacks them."""

    def __init__(
        self,
        store: EntityStore,
        rules: Sequence[Rule],
        yield_every: int | None = None,
        list_limit: int | None = None,
    ):
        settings = get_settings()
        self._clients = store.collection(EntityName.CLIENT)
        self._rules = [rule for rule in rules if isinstance(rule, ServiceAutoLinkRule)]
        self._yield_every = yield_every or settings.automation_yield_every
        self._list_limit = list_limit or settings.entity_list_limit
        self._is_running = False
        self._logger = logger.bind(component="service_link_resolver")

    async def resolve(
        self,
        rule_ids: Iterable[str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Update every active client missing an auto-linked service.

        Args:
            rule_ids: Only apply these link rules. Defaults to all of them.
            cancel_token: Checked between clients.

        Raises:
            ScanError: If the client list cannot be loaded.
            OperationInProgressError: If a resolve is already running.
        """
        if self._is_running:
            raise OperationInProgressError("Service linking is already in progress")
        self._is_running = True
        try:
            return await self._resolve(rule_ids, cancel_token)
        finally:
            self._is_running = False

    async def _resolve(
        self, rule_ids: Iterable[str] | None, cancel_token: CancellationToken | None
    ) -> ExecutionResult:
        rules = self._rules
        if rule_ids is not None:
            wanted = set(rule_ids)
            rules = [rule for rule in rules if rule.id in wanted]

        try:
            records = await self._clients.list(limit=self._list_limit)
        except Exception as e:
            raise ScanError(f"Failed to load clients: {e}") from e

        details: list[ExecutionDetail] = []
        cancelled = False
        active = [r for r in records if r.get("status") == "active"]
        for index, record in enumerate(active):
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
                break
            if index and index % self._yield_every == 0:
                await asyncio.sleep(0)

            try:
                client = ClientProfile.from_record(record)
            except ValueError as e:
                self._logger.warning("client_skipped", client_id=record.get("id"), error=str(e))
                continue

            to_add = missing_linked_services(rules, client.service_types, client.business_type)
            if not to_add:
                continue
            details.append(await self._link(client, to_add))

        result = ExecutionResult.from_details(details, clients=len(details), cancelled=cancelled)
        if not details:
            result.details.append(
                ExecutionDetail(
                    client_name="-",
                    entity_label=SERVICES_LABEL,
                    description=NOTHING_TO_CHANGE,
                    status=ItemStatus.SUCCESS,
                )
            )
        self._logger.info(
            "service_links_applied",
            updated=result.created,
            errors=result.errors,
            cancelled=cancelled,
        )
        return result

    async def _link(self, client: ClientProfile, to_add: list[str]) -> ExecutionDetail:
        services = [*client.service_types, *to_add]
        try:
            await self._clients.update(client.id, {"service_types": services})
        except Exception as e:
            self._logger.warning("service_link_failed", client_id=client.id, error=str(e))
            return ExecutionDetail(
                client_name=client.name,
                client_id=client.id,
                entity_label=SERVICES_LABEL,
                description=f"שגיאה: {e}",
                status=ItemStatus.ERROR,
                message=str(e),
            )
        self._logger.info("services_linked", client_id=client.id, added=to_add)
        return ExecutionDetail(
            client_name=client.name,
            client_id=client.id,
            entity_label=SERVICES_LABEL,
            description="נוספו: " + ", ".join(_service_label(s) for s in to_add),
            status=ItemStatus.SUCCESS,
            record_id=client.id,
        )
