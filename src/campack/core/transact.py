"""Nested, revertible transactions between callers and state holders

A holder keeps a stack of checkpoints, one per caller. Ending a checkpoint
that is not the innermost one waits until every checkpoint pushed after it
has ended, so changes are always applied in reverse order of beginning,
whichever caller asks first.
"""

import asyncio
import inspect
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .exceptions import TransactError


TransactCallback = Callable[[], Union[None, Awaitable[None]]]


@dataclass
class TransactRecord:
    """One open checkpoint of a holder's state"""

    caller: str
    holder: str
    state: Any
    commit: List[TransactCallback] = field(default_factory=list)
    decline: List[TransactCallback] = field(default_factory=list)


async def _run_callbacks(callbacks: List[TransactCallback]) -> None:
    for callback in callbacks:
        result = callback()
        if inspect.isawaitable(result):
            await result


class Transact:
    """Coordinates begin/end of transactions on named holders"""

    def __init__(self):
        self._transacts: Dict[str, List[TransactRecord]] = {}
        self._ending = 0
        self._settling: Dict[str, int] = {}
        self._changed = asyncio.Condition()

    @property
    def blocked(self) -> bool:
        """Whether an end is in progress, which rejects every begin"""
        return self._ending > 0

    def begin(self, caller: str, holder: str, state: Any) -> bool:
        """
        Begin a transaction between a caller and a holder

        Args:
            caller: Name of the caller capturing the state
            holder: Name of the holder owning the state
            state: State to capture, deep-copied. A callable is invoked and
                its result is stored as is.

        Returns:
            bool: False if an end is in progress and nothing was begun

        Raises:
            TransactError: If the caller already has a transaction on the holder
        """
        caller, holder = str(caller), str(holder)
        if self.blocked:
            return False

        if self.has_transact(caller, holder):
            raise TransactError(
                "Cannot start two transacts of the same caller-holder",
                details=f"{caller} -> {holder}",
            )

        snapshot = state() if callable(state) else deepcopy(state)
        self._transacts.setdefault(holder, []).append(
            TransactRecord(caller=caller, holder=holder, state=snapshot)
        )
        return True

    def has_transact(self, caller: str, holder: str) -> bool:
        """Check whether the caller has an open transaction on the holder"""
        return self._find(str(caller), str(holder)) is not None

    def snapshots(self, holder: str) -> List[Any]:
        """States captured by every open transaction of a holder, outermost first"""
        return [record.state for record in self._transacts.get(str(holder), [])]

    def state_of(self, caller: str, holder: str) -> Optional[Any]:
        """State captured by the caller's open transaction on the holder"""
        record = self._find(str(caller), str(holder))
        return record.state if record is not None else None

    async def end(self, caller: str, holder: str, decline: bool = False) -> Optional[Any]:
        """
        End the transaction between a caller and a holder

        Blocks every begin, then waits until the caller's transaction is the
        innermost one of the holder before popping it and running its
        callbacks.

        Args:
            caller: Name of the caller that began the transaction
            holder: Name of the holder owning the state
            decline: Decline instead of commit

        Returns:
            Optional[Any]: The saved state if declined, None if committed or
            if there was no such transaction
        """
        caller, holder = str(caller), str(holder)
        record = self._find(caller, holder)
        if record is None:
            return None

        stack = self._transacts[holder]
        self._ending += 1
        try:
            async with self._changed:
                await self._changed.wait_for(
                    lambda: stack[-1] is record and not self._settling.get(holder)
                )
                stack.pop()
                self._settling[holder] = self._settling.get(holder, 0) + 1

            try:
                await _run_callbacks(record.decline if decline else record.commit)
            finally:
                self._settling[holder] -= 1
        finally:
            self._ending -= 1
            async with self._changed:
                self._changed.notify_all()

        return record.state if decline else None

    async def after_commit(self, holder: str, callback: TransactCallback) -> None:
        """
        Queue a callback on the innermost transaction's commit

        Runs the callback right away if the holder has no open transaction.
        """
        stack = self._transacts.get(str(holder))
        if stack:
            stack[-1].commit.append(callback)
        else:
            await _run_callbacks([callback])

    async def after_decline(self, holder: str, callback: TransactCallback) -> None:
        """Queue a callback on the innermost transaction's decline, dropped if none"""
        stack = self._transacts.get(str(holder))
        if stack:
            stack[-1].decline.append(callback)

    def _find(self, caller: str, holder: str) -> Optional[TransactRecord]:
        for record in self._transacts.get(holder, []):
            if record.caller == caller:
                return record
        return None


class TransactEnabled:
    """Transact capabilities for a class holding revertible state

    Subclasses set ``_holder``, provide ``_transact`` and override
    ``_get_managed_state`` and ``_set_managed_state``.
    """

    _holder = "anonymous"
    _transact: Transact

    def _get_managed_state(self) -> Any:
        """Return a snapshot of the state managed by Transact"""
        raise NotImplementedError

    async def _set_managed_state(self, state: Any, declined: bool) -> None:
        """Apply the state returned by Transact when a transaction ends"""
        raise NotImplementedError

    def begin_transact(self, caller: str = "anonymous") -> bool:
        return self._transact.begin(caller, self._holder, self._get_managed_state)

    def has_transact(self, caller: str = "anonymous") -> bool:
        return self._transact.has_transact(caller, self._holder)

    async def end_transact(self, caller: str = "anonymous", decline: bool = False) -> Optional[Any]:
        saved = self._transact.state_of(caller, self._holder) if decline else None
        try:
            state = await self._transact.end(caller, self._holder, decline)
        except Exception:
            # The checkpoint is gone once callbacks run, roll back before re-raising
            if decline and not self.has_transact(caller):
                await self._set_managed_state(saved, True)
            raise
        await self._set_managed_state(state, decline)
        return state

    async def after_transact_commit(self, callback: TransactCallback) -> None:
        await self._transact.after_commit(self._holder, callback)

    async def after_transact_decline(self, callback: TransactCallback) -> None:
        await self._transact.after_decline(self._holder, callback)
