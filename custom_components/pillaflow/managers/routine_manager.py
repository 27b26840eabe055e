"""Routine Manager - ordered routine task mutations."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING
import uuid

from homeassistant.exceptions import ServiceValidationError

from .. import const
from ..engines.routine_engine import RoutineEngine
from ..remote import PillaflowRemoteError
from .base_manager import BaseManager, KeyedLock

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from ..coordinator import PillaflowDataCoordinator
    from ..type_defs import RoutineData, RoutineTaskData


class RoutineManager(BaseManager):
    """Add, remove and reorder routine tasks with contiguous positions."""

    def __init__(
        self, hass: HomeAssistant, coordinator: PillaflowDataCoordinator
    ) -> None:
        """Initialize the routine manager."""
        super().__init__(hass, coordinator)
        self._routine_locks = KeyedLock()

    async def async_setup(self) -> None:
        """Nothing to subscribe to."""
        const.LOGGER.debug("DEBUG: RoutineManager ready for entry %s", self.entry_id)

    def _find_routine(self, routine_id: str) -> tuple[int, RoutineData]:
        for index, routine in enumerate(self.coordinator.routines):
            if routine.get(const.DATA_ID) == routine_id:
                return index, routine
        raise ServiceValidationError(
            translation_domain=const.DOMAIN,
            translation_key=const.TRANS_KEY_ERROR_ROUTINE_NOT_FOUND,
            translation_placeholders={"routine_id": str(routine_id)},
        )

    def _current_tasks(self, routine_id: str) -> list[RoutineTaskData]:
        _index, routine = self._find_routine(routine_id)
        return list(routine.get(const.DATA_ROUTINE_TASKS, []))

    async def _async_commit(
        self,
        routine_id: str,
        apply: Callable[[list[RoutineTaskData]], list[RoutineTaskData]],
    ) -> RoutineData:
        """Apply a task change to the routine as it is now, then persist.

        The routine is looked up by id again because a sync may have replaced
        the routine list while a remote call was pending.
        """
        index, routine = self._find_routine(routine_id)
        tasks = apply(list(routine.get(const.DATA_ROUTINE_TASKS, [])))
        updated: RoutineData = {**routine, const.DATA_ROUTINE_TASKS: tasks}  # type: ignore[misc]
        self.coordinator.routines[index] = updated
        await self.coordinator.store.async_set(
            const.CACHE_KEY_ROUTINES, self.coordinator.routines
        )
        self.coordinator.async_update_listeners()
        self.emit(const.SIGNAL_SUFFIX_ROUTINES_CHANGED, routine_id=routine_id)
        return updated

    async def async_add_task(self, routine_id: str, name: str) -> RoutineData:
        """Append a named task at the end of a routine.

        Raises:
            ServiceValidationError: No session, unknown routine or empty name.
        """
        self.coordinator.require_session()
        async with self._routine_locks.hold(routine_id):
            task: dict[str, object] = {
                const.DATA_ID: str(uuid.uuid4()),
                const.DATA_NAME: str(name or "").strip(),
            }
            try:
                tasks = RoutineEngine.add_task(self._current_tasks(routine_id), task)
            except ValueError as err:
                raise ServiceValidationError(
                    translation_domain=const.DOMAIN,
                    translation_key=const.TRANS_KEY_ERROR_ROUTINE_TASK_NAME_REQUIRED,
                ) from err

            added = tasks[-1]
            remote = self.coordinator.remote
            if remote is not None:
                try:
                    row = await remote.async_insert(
                        const.REMOTE_ROUTINE_TASKS,
                        {
                            const.DATA_USER_ID: self.coordinator.user_id,
                            const.DATA_ROUTINE_ID: routine_id,
                            const.DATA_NAME: added[const.DATA_NAME],
                            const.DATA_ROUTINE_TASK_POSITION: added[
                                const.DATA_ROUTINE_TASK_POSITION
                            ],
                        },
                    )
                except PillaflowRemoteError as err:
                    const.LOGGER.warning(
                        "WARNING: Creating routine task remotely failed, "
                        "kept locally: %s",
                        err,
                    )
                else:
                    if row and row.get(const.DATA_ID):
                        added[const.DATA_ID] = str(row[const.DATA_ID])

            def append(current: list[RoutineTaskData]) -> list[RoutineTaskData]:
                # A sync during the insert may already carry the new row
                others = [
                    t for t in current if t.get(const.DATA_ID) != added[const.DATA_ID]
                ]
                return RoutineEngine.add_task(others, added)

            return await self._async_commit(routine_id, append)

    async def async_remove_task(self, routine_id: str, task_id: str) -> RoutineData:
        """Remove a task and close the position gap."""
        self.coordinator.require_session()
        async with self._routine_locks.hold(routine_id):
            tasks = RoutineEngine.remove_task(self._current_tasks(routine_id), task_id)

            remote = self.coordinator.remote
            if remote is not None:
                try:
                    await remote.async_delete(
                        const.REMOTE_ROUTINE_TASKS,
                        {
                            const.DATA_ID: task_id,
                            const.DATA_USER_ID: self.coordinator.user_id,
                        },
                    )
                except PillaflowRemoteError as err:
                    const.LOGGER.warning(
                        "WARNING: Removing routine task %s remotely failed: %s",
                        task_id,
                        err,
                    )
            await self._async_push_positions(tasks)
            return await self._async_commit(
                routine_id, lambda current: RoutineEngine.remove_task(current, task_id)
            )

    async def async_reorder_tasks(
        self, routine_id: str, new_order: Sequence[str]
    ) -> RoutineData:
        """Reorder tasks to the given id permutation.

        Raises:
            ServiceValidationError: When new_order is not a permutation of the
                routine's task ids.
        """
        self.coordinator.require_session()
        order = list(new_order)
        async with self._routine_locks.hold(routine_id):
            try:
                tasks = RoutineEngine.reorder_tasks(
                    self._current_tasks(routine_id), order
                )
            except ValueError as err:
                raise ServiceValidationError(
                    translation_domain=const.DOMAIN,
                    translation_key=const.TRANS_KEY_ERROR_INVALID_REORDER,
                ) from err

            await self._async_push_positions(tasks)

            def reorder(current: list[RoutineTaskData]) -> list[RoutineTaskData]:
                try:
                    return RoutineEngine.reorder_tasks(current, order)
                except ValueError:
                    # The task set changed remotely; keep the synced order
                    return RoutineEngine.resequence(RoutineEngine.sort_tasks(current))

            return await self._async_commit(routine_id, reorder)

    async def _async_push_positions(self, tasks: list[RoutineTaskData]) -> None:
        """Write every task's position back to the backend (best effort)."""
        remote = self.coordinator.remote
        if remote is None:
            return
        for task in tasks:
            try:
                await remote.async_update(
                    const.REMOTE_ROUTINE_TASKS,
                    {
                        const.DATA_ID: task[const.DATA_ID],
                        const.DATA_USER_ID: self.coordinator.user_id,
                    },
                    {
                        const.DATA_ROUTINE_TASK_POSITION: task[
                            const.DATA_ROUTINE_TASK_POSITION
                        ]
                    },
                )
            except PillaflowRemoteError as err:
                const.LOGGER.warning(
                    "WARNING: Updating position of routine task %s failed: %s",
                    task[const.DATA_ID],
                    err,
                )
                return
