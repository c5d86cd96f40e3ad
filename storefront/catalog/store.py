"""Generic entity store.

One ``EntityStore`` subclass per table provides create, read, update,
upsert, delete, count and aggregation operations with uniqueness,
reference and deletion-policy integrity.

Every operation takes an optional ``tx`` unit of work. Without one the
operation runs in its own short transaction; with one it joins the open
transaction and is only visible outside once that commits. Operations on
one unit of work must be awaited one after another.

Example usage:
    catalog = Catalog.from_engine(engine)
    user = await catalog.users.create({"username": "alice", "fullname": "Alice"})
    found = await catalog.users.find_unique({"username": "alice"})
"""

from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy import CheckConstraint, delete, func, inspect, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import RelationshipDirection

from storefront.catalog.models import CatalogRecord, utcnow
from storefront.catalog.schemas import WriteSchema
from storefront.catalog.transaction import UnitOfWork, is_connection_error
from storefront.domain.exceptions import (
    ConnectionFailureError,
    ConstraintViolationError,
    InvalidQueryError,
    NotFoundError,
)
from storefront.query.aggregation import aggregate, group_by
from storefront.query.filters import Where, compile_where
from storefront.query.includes import load_includes
from storefront.query.options import (
    AggregateOptions,
    FindManyOptions,
    GroupByOptions,
    IncludeSpec,
    UniqueKey,
)
from storefront.query.ordering import with_tiebreaker
from storefront.query.reader import fetch_many, unique_criteria

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=CatalogRecord)

WriteData = Mapping[str, Any] | BaseModel


class EntityStore(Generic[ModelT]):
    """Persistence operations for one catalog entity.

    Subclasses declare the mapped class, its write schemas and its unique
    fields. Foreign keys and deletion policies are read from the mapping.
    """

    model: ClassVar[type[CatalogRecord]]
    create_schema: ClassVar[type[WriteSchema]]
    update_schema: ClassVar[type[WriteSchema]]
    unique_fields: ClassVar[tuple[str, ...]] = ("id",)

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize store with a session factory.

        Args:
            session_factory: Factory producing sessions on the catalog database.
        """
        self.session_factory = session_factory

    @property
    def entity(self) -> str:
        return self.model.__name__

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        data: WriteData,
        *,
        include: IncludeSpec | None = None,
        tx: UnitOfWork | None = None,
    ) -> ModelT:
        """Insert one row.

        Args:
            data: Field values (mapping or create schema instance).
            include: Relations to load on the returned row.
            tx: Unit of work to join.

        Returns:
            The created row with generated id and timestamps.

        Raises:
            ConstraintViolationError: On invalid values, a unique collision or
                an unresolved foreign key.
        """
        values = self._create_values(data)
        async with self._session(tx) as session:
            await self._check_references(session, values)
            instance = self.model(**values)
            await self._insert(session, instance)
            await load_includes(session, self.model, [instance], include)
        logger.info("Entity created", entity=self.entity, id=instance.id)
        return instance

    async def create_many(
        self,
        rows: Iterable[WriteData],
        *,
        skip_duplicates: bool = False,
        tx: UnitOfWork | None = None,
    ) -> int:
        """Insert several rows.

        Args:
            rows: Field values per row.
            skip_duplicates: Skip rows colliding on a unique field instead of
                aborting on the first collision.
            tx: Unit of work to join.

        Returns:
            Number of inserted rows.
        """
        payloads = [self._create_values(row) for row in rows]
        created = 0
        resolved: set[tuple[str, Any]] = set()
        async with self._session(tx) as session:
            for values in payloads:
                await self._check_references(session, values, resolved)
                try:
                    await self._insert(session, self.model(**values))
                except ConstraintViolationError as exc:
                    if skip_duplicates and exc.kind == "unique":
                        logger.debug("Duplicate skipped", entity=self.entity, fields=exc.fields)
                        continue
                    raise
                created += 1
        logger.info(
            "Entities created",
            entity=self.entity,
            count=created,
            skipped=len(payloads) - created,
        )
        return created

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def find_unique(
        self,
        key: UniqueKey,
        *,
        include: IncludeSpec | None = None,
        tx: UnitOfWork | None = None,
    ) -> ModelT | None:
        """Get one row by id or another unique field.

        Args:
            key: Id string or single-entry mapping such as ``{"sku": "SKU-001"}``.
            include: Relations to load.
            tx: Unit of work to join.

        Returns:
            The row, or None when nothing matches.
        """
        criteria = unique_criteria(self.model, key, self.unique_fields)
        async with self._session(tx) as session:
            result = await session.execute(select(self.model).where(criteria))
            instance = result.scalar_one_or_none()
            if instance is not None:
                await load_includes(session, self.model, [instance], include)
        return instance

    async def find_unique_or_raise(
        self,
        key: UniqueKey,
        *,
        include: IncludeSpec | None = None,
        tx: UnitOfWork | None = None,
    ) -> ModelT:
        """Like ``find_unique`` but raises ``NotFoundError`` instead of returning None."""
        instance = await self.find_unique(key, include=include, tx=tx)
        if instance is None:
            raise NotFoundError(self.entity, self._key_dict(key))
        return instance

    async def find_many(
        self,
        options: FindManyOptions | None = None,
        *,
        tx: UnitOfWork | None = None,
    ) -> list[ModelT]:
        """Get rows matching a filter, ordered and paginated.

        Args:
            options: Filter, include, ordering and pagination.
            tx: Unit of work to join.

        Returns:
            Matching rows.
        """
        options = options or FindManyOptions()
        async with self._session(tx) as session:
            rows = await fetch_many(session, self.model, options, self.unique_fields)
        logger.debug("Entities read", entity=self.entity, count=len(rows))
        return rows

    async def find_first(
        self,
        options: FindManyOptions | None = None,
        *,
        tx: UnitOfWork | None = None,
    ) -> ModelT | None:
        """First row of a ``find_many`` query, or None."""
        options = options or FindManyOptions()
        take = -1 if options.take is not None and options.take < 0 else 1
        rows = await self.find_many(replace(options, take=take), tx=tx)
        return rows[0] if rows else None

    async def find_first_or_raise(
        self,
        options: FindManyOptions | None = None,
        *,
        tx: UnitOfWork | None = None,
    ) -> ModelT:
        """Like ``find_first`` but raises ``NotFoundError`` when nothing matches."""
        instance = await self.find_first(options, tx=tx)
        if instance is None:
            where = dict(options.where or {}) if options else {}
            raise NotFoundError(self.entity, where)
        return instance

    async def iterate(
        self,
        options: FindManyOptions | None = None,
        *,
        batch_size: int = 100,
        tx: UnitOfWork | None = None,
    ) -> AsyncIterator[ModelT]:
        """Lazily walk every matching row in order.

        Rows are fetched in cursor-paginated batches; each call starts over
        from the beginning.

        Args:
            options: Filter, include and ordering; pagination is managed here.
            batch_size: Rows per round trip.
            tx: Unit of work to join.

        Yields:
            Matching rows in order.
        """
        options = options or FindManyOptions()
        if options.cursor is not None or options.take is not None or options.skip:
            raise InvalidQueryError("iterate manages cursor, take and skip itself")
        if batch_size < 1:
            raise InvalidQueryError("batch_size must be positive")

        options = replace(options, order_by=with_tiebreaker(self.model, options.order_by))
        cursor = None
        while True:
            page = await self.find_many(
                replace(options, cursor=cursor, skip=1 if cursor else 0, take=batch_size),
                tx=tx,
            )
            for row in page:
                yield row
            if len(page) < batch_size:
                return
            cursor = page[-1].id

    async def count(self, where: Where | None = None, *, tx: UnitOfWork | None = None) -> int:
        """Count rows matching a filter."""
        stmt = select(func.count()).select_from(self.model).where(compile_where(self.model, where))
        async with self._session(tx) as session:
            total = (await session.execute(stmt)).scalar_one()
        return total

    async def aggregate(
        self,
        options: AggregateOptions,
        *,
        tx: UnitOfWork | None = None,
    ) -> dict[str, dict[str, Any]]:
        """Compute count/min/max/sum/avg over matching rows."""
        async with self._session(tx) as session:
            return await aggregate(session, self.model, options)

    async def group_by(
        self,
        options: GroupByOptions,
        *,
        tx: UnitOfWork | None = None,
    ) -> list[dict[str, Any]]:
        """Group matching rows and compute aggregates per group."""
        async with self._session(tx) as session:
            return await group_by(session, self.model, options)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(
        self,
        key: UniqueKey,
        data: WriteData,
        *,
        include: IncludeSpec | None = None,
        tx: UnitOfWork | None = None,
    ) -> ModelT:
        """Apply a partial update to one row.

        Only fields present in ``data`` change; ``updated_at`` is refreshed.

        Raises:
            NotFoundError: If no row has the key.
            ConstraintViolationError: On invalid values or collisions.
        """
        values = self._update_values(data)
        criteria = unique_criteria(self.model, key, self.unique_fields)
        async with self._session(tx) as session:
            instance = await self._locked(session, criteria)
            if instance is None:
                raise NotFoundError(self.entity, self._key_dict(key))
            await self._check_references(session, values)
            await self._apply(session, instance, values)
            await load_includes(session, self.model, [instance], include)
        logger.info("Entity updated", entity=self.entity, id=instance.id, fields=sorted(values))
        return instance

    async def update_many(
        self,
        where: Where | None,
        data: WriteData,
        *,
        limit: int | None = None,
        tx: UnitOfWork | None = None,
    ) -> int:
        """Apply a partial update to every matching row.

        Args:
            where: Row filter.
            data: Fields to set.
            limit: Maximum rows to update.
            tx: Unit of work to join.

        Returns:
            Number of updated rows.
        """
        values = self._update_values(data)
        async with self._session(tx) as session:
            ids = await self._matching_ids(session, where, limit)
            if not ids:
                return 0
            await self._check_references(session, values)
            stmt = (
                update(self.model)
                .where(self.model.id.in_(ids))
                .values({**values, "updated_at": utcnow()})
                .execution_options(synchronize_session="fetch")
            )
            try:
                async with session.begin_nested():
                    result = await session.execute(stmt)
            except IntegrityError as exc:
                raise self._integrity_error(exc) from exc
        logger.info("Entities updated", entity=self.entity, count=result.rowcount)
        return result.rowcount

    async def upsert(
        self,
        key: UniqueKey,
        create: WriteData,
        update: WriteData,
        *,
        include: IncludeSpec | None = None,
        tx: UnitOfWork | None = None,
    ) -> ModelT:
        """Update the row with ``key``, or create it when missing.

        The insert runs under a savepoint; if a concurrent caller created
        the same key first, the unique conflict falls back to updating the
        row it created.

        Args:
            key: Unique key of the row.
            create: Values for a new row; the key field is filled in.
            update: Partial update for an existing row.
            include: Relations to load on the returned row.
            tx: Unit of work to join.

        Returns:
            The created or updated row.
        """
        criteria = unique_criteria(self.model, key, self.unique_fields)
        create_data = self._as_mapping(create)
        for field, value in self._key_dict(key).items():
            create_data.setdefault(field, value)
        create_values = self._create_values(create_data)
        update_values = self._update_values(update)

        async with self._session(tx) as session:
            instance = await self._locked(session, criteria)
            created = False
            if instance is None:
                await self._check_references(session, create_values)
                candidate = self.model(**create_values)
                try:
                    await self._insert(session, candidate)
                except ConstraintViolationError as exc:
                    if exc.kind != "unique":
                        raise
                    instance = await self._locked(session, criteria)
                    if instance is None:
                        raise
                    logger.info("Upsert lost creation race", entity=self.entity, id=instance.id)
                else:
                    instance = candidate
                    created = True
            if not created:
                await self._check_references(session, update_values)
                await self._apply(session, instance, update_values)
            await load_includes(session, self.model, [instance], include)
        logger.info("Entity upserted", entity=self.entity, id=instance.id, created=created)
        return instance

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, key: UniqueKey, *, tx: UnitOfWork | None = None) -> ModelT:
        """Delete one row, applying the deletion policy to its dependents.

        Returns:
            The deleted row.

        Raises:
            NotFoundError: If no row has the key.
            ConstraintViolationError: If a restricting dependent exists.
        """
        criteria = unique_criteria(self.model, key, self.unique_fields)
        async with self._session(tx) as session:
            instance = await self._locked(session, criteria)
            if instance is None:
                raise NotFoundError(self.entity, self._key_dict(key))
            async with session.begin_nested():
                await self._delete_rows(session, self.model, [instance.id])
        logger.info("Entity deleted", entity=self.entity, id=instance.id)
        return instance

    async def delete_many(
        self,
        where: Where | None = None,
        *,
        limit: int | None = None,
        tx: UnitOfWork | None = None,
    ) -> int:
        """Delete every matching row; matching nothing is not an error.

        Returns:
            Number of deleted rows.
        """
        async with self._session(tx) as session:
            ids = await self._matching_ids(session, where, limit)
            async with session.begin_nested():
                deleted = await self._delete_rows(session, self.model, ids)
        logger.info("Entities deleted", entity=self.entity, count=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self, tx: UnitOfWork | None) -> AsyncIterator[AsyncSession]:
        try:
            if tx is not None:
                yield tx.session
            else:
                async with self.session_factory() as session:
                    async with session.begin():
                        yield session
        except Exception as exc:
            if not is_connection_error(exc):
                raise
            logger.warning("Database connection failed", entity=self.entity, error=str(exc))
            raise ConnectionFailureError(
                f"Database unavailable while accessing {self.entity}",
                details={"entity": self.entity, "error": str(exc)},
            ) from exc

    def _as_mapping(self, data: WriteData) -> dict[str, Any]:
        if isinstance(data, BaseModel):
            return data.model_dump(exclude_unset=True)
        return dict(data)

    def _validated(self, schema: type[WriteSchema], data: WriteData) -> dict[str, Any]:
        try:
            payload = schema.model_validate(self._as_mapping(data))
        except ValidationError as exc:
            fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
            raise ConstraintViolationError(
                self.entity,
                "validation",
                f"Invalid {self.entity} data: {', '.join(fields)}",
                fields=fields,
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
        return payload.model_dump(exclude_unset=True)

    def _create_values(self, data: WriteData) -> dict[str, Any]:
        values = self._validated(self.create_schema, data)
        if values.get("id") is None:
            values.pop("id", None)
        return values

    def _update_values(self, data: WriteData) -> dict[str, Any]:
        values = self._validated(self.update_schema, data)
        columns = inspect(self.model).columns
        nulls = [field for field, value in values.items() if value is None and not columns[field].nullable]
        if nulls:
            raise ConstraintViolationError(
                self.entity,
                "validation",
                f"{self.entity} fields {nulls} must not be null",
                fields=nulls,
            )
        return values

    def _key_dict(self, key: UniqueKey) -> dict[str, Any]:
        return {"id": key} if isinstance(key, str) else dict(key)

    def _references(self) -> list[tuple[str, type, str]]:
        """(local field, referenced model, referenced field) per foreign key."""
        references = []
        mapper = inspect(self.model)
        for rel in mapper.relationships:
            if rel.direction is not RelationshipDirection.MANYTOONE:
                continue
            local, remote = rel.local_remote_pairs[0]
            references.append(
                (
                    mapper.get_property_by_column(local).key,
                    rel.mapper.class_,
                    rel.mapper.get_property_by_column(remote).key,
                )
            )
        return references

    async def _check_references(
        self,
        session: AsyncSession,
        values: Mapping[str, Any],
        resolved: set[tuple[str, Any]] | None = None,
    ) -> None:
        for field, target, target_field in self._references():
            value = values.get(field)
            if value is None or (resolved is not None and (field, value) in resolved):
                continue
            column = getattr(target, target_field)
            found = await session.scalar(select(column).where(column == value))
            if found is None:
                raise ConstraintViolationError(
                    self.entity,
                    "foreign_key",
                    f"{field} does not reference an existing {target.__name__}",
                    fields=[field],
                    details={"value": value},
                )
            if resolved is not None:
                resolved.add((field, value))

    async def _insert(self, session: AsyncSession, instance: CatalogRecord) -> None:
        try:
            async with session.begin_nested():
                session.add(instance)
                await session.flush()
        except IntegrityError as exc:
            raise self._integrity_error(exc) from exc

    async def _apply(
        self,
        session: AsyncSession,
        instance: CatalogRecord,
        values: Mapping[str, Any],
    ) -> None:
        try:
            async with session.begin_nested():
                for field, value in values.items():
                    setattr(instance, field, value)
                instance.updated_at = utcnow()
                await session.flush()
        except IntegrityError as exc:
            raise self._integrity_error(exc) from exc

    async def _locked(self, session: AsyncSession, criteria: Any) -> ModelT | None:
        stmt = (
            select(self.model)
            .where(criteria)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _matching_ids(
        self,
        session: AsyncSession,
        where: Where | None,
        limit: int | None,
    ) -> list[str]:
        if limit is not None and limit < 0:
            raise InvalidQueryError("limit must not be negative")
        stmt = select(self.model.id).where(compile_where(self.model, where))
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await session.execute(stmt)).scalars().all())

    async def _delete_rows(self, session: AsyncSession, model: type, ids: list[str]) -> int:
        """Delete rows by id after applying each dependent's ``ondelete`` policy."""
        if not ids:
            return 0
        for rel in inspect(model).relationships:
            if rel.direction is not RelationshipDirection.ONETOMANY:
                continue
            _, remote = rel.local_remote_pairs[0]
            child = rel.mapper.class_
            fk_key = rel.mapper.get_property_by_column(remote).key
            fk = getattr(child, fk_key)
            policy = (next(iter(remote.foreign_keys)).ondelete or "NO ACTION").upper()

            if policy == "CASCADE":
                child_ids = list((await session.execute(select(child.id).where(fk.in_(ids)))).scalars().all())
                await self._delete_rows(session, child, child_ids)
            elif policy == "SET NULL":
                await session.execute(
                    update(child)
                    .where(fk.in_(ids))
                    .values({fk_key: None, "updated_at": utcnow()})
                    .execution_options(synchronize_session="fetch")
                )
            else:
                blocking = await session.scalar(select(child.id).where(fk.in_(ids)).limit(1))
                if blocking is not None:
                    raise ConstraintViolationError(
                        model.__name__,
                        "restrict",
                        f"Cannot delete {model.__name__}: related {rel.key} still exist",
                        fields=[rel.key],
                    )

        result = await session.execute(
            delete(model)
            .where(model.id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def _integrity_error(self, exc: IntegrityError) -> ConstraintViolationError:
        message = str(exc.orig)
        lowered = message.lower()
        table = self.model.__tablename__
        if "unique" in lowered or "duplicate key" in lowered:
            kind = "unique"
            fields = [
                field
                for field in self.unique_fields
                if f"{table}.{field}" in message or f"uq_{table}_{field}" in message
            ]
        elif "foreign key" in lowered:
            kind = "foreign_key"
            fields = []
        else:
            kind = "check"
            fields = self._check_fields(message)
        logger.warning("Constraint violated", entity=self.entity, kind=kind, fields=fields)
        return ConstraintViolationError(
            self.entity,
            kind,
            f"{self.entity} violates a {kind} constraint: {message}",
            fields=fields,
        )

    def _check_fields(self, message: str) -> list[str]:
        """Columns of the named check constraints reported in ``message``."""
        table = self.model.__table__
        prefix = f"ck_{table.name}_"
        fields: list[str] = []
        for constraint in table.constraints:
            name = str(constraint.name or "")
            if not isinstance(constraint, CheckConstraint) or not name.startswith(prefix):
                continue
            if name not in message:
                continue
            rest = name[len(prefix):]
            matches = [c.key for c in table.columns if rest == c.key or rest.startswith(f"{c.key}_")]
            if matches:
                fields.append(max(matches, key=len))
        return fields
