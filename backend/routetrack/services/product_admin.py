"""Administrative product edits: typed commands, bulk updates, deletion.

These never move a product along its route; the station pointer and the
ledger belong to the progression engine.
"""

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.auth import SYSTEM_ACTOR, Actor
from routetrack.core.errors import NotFoundError
from routetrack.models.product import Product
from routetrack.models.station_history import StationFieldValue, StationHistoryEntry
from routetrack.schemas.product import (
    ProductCommand,
    ProductResponse,
    RenameCommand,
    SetPriorityCommand,
    SetStatusOverrideCommand,
)
from routetrack.services.audit import record_audit
from routetrack.services.product_state import describe_product
from routetrack.services.transactions import BulkOutcome, ProductUnitOfWork

logger = logging.getLogger(__name__)


def command_changes(command: ProductCommand) -> dict[str, object]:
    """Column values a command writes. Unset rename parts are left alone."""
    if isinstance(command, RenameCommand):
        changes: dict[str, object] = {}
        if command.name is not None:
            changes["name"] = command.name
        if command.model is not None:
            changes["model"] = command.model
        return changes
    if isinstance(command, SetPriorityCommand):
        return {"priority": command.priority}
    if isinstance(command, SetStatusOverrideCommand):
        return {"status_override": command.status}
    raise TypeError(f"Unsupported product command: {type(command).__name__}")


class ProductAdminService(ProductUnitOfWork):
    async def _load_for_update(self, session: AsyncSession, product_id: uuid.UUID) -> Product:
        result = await session.execute(select(Product).where(Product.id == product_id).with_for_update())
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def apply(
        self, product_id: uuid.UUID, command: ProductCommand, actor: Actor = SYSTEM_ACTOR
    ) -> ProductResponse:
        """Apply one command to one product atomically and audit it."""
        changes = command_changes(command)

        async def _apply(session: AsyncSession) -> ProductResponse:
            product = await self._load_for_update(session, product_id)
            old = {key: getattr(product, key) for key in changes}
            for key, value in changes.items():
                setattr(product, key, value)
            await session.flush()
            await record_audit(session, "products", product.id, "update", old, changes, actor.id)
            logger.info("Product %s: %s by %s", product.id, command.op, actor.id)
            return await describe_product(session, product, self.overdue_policy, self.clock())

        return await self.run(product_id, _apply)

    async def bulk_update(
        self, product_ids: list[str], command: ProductCommand, actor: Actor = SYSTEM_ACTOR
    ) -> BulkOutcome:
        async def _apply(product_id: uuid.UUID) -> None:
            await self.apply(product_id, command, actor)

        return await self.run_bulk(product_ids, _apply)

    async def delete_product(self, product_id: uuid.UUID, actor: Actor = SYSTEM_ACTOR) -> None:
        """Delete a product together with its ledger and captured values."""

        async def _delete(session: AsyncSession) -> None:
            product = await self._load_for_update(session, product_id)
            entry_ids = select(StationHistoryEntry.id).where(StationHistoryEntry.product_id == product.id)
            await session.execute(
                delete(StationFieldValue)
                .where(StationFieldValue.entry_id.in_(entry_ids))
                .execution_options(synchronize_session=False)
            )
            entries = await session.execute(
                delete(StationHistoryEntry)
                .where(StationHistoryEntry.product_id == product.id)
                .execution_options(synchronize_session=False)
            )
            await record_audit(
                session,
                "products",
                product.id,
                "delete",
                {"name": product.name, "model": product.model, "route_id": product.route_id},
                None,
                actor.id,
            )
            await session.delete(product)
            await session.flush()
            logger.info("Deleted product %s and %d history entries", product_id, entries.rowcount)

        await self.run(product_id, _delete)
