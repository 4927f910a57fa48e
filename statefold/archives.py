"""Caches of trains: one archive per foldable type, one train per initial state."""

from __future__ import annotations

from typing import Any

from statefold.train import Train


class Archive:
    """The trains of one foldable, keyed by initial state."""

    def __init__(self, foldable: Any, safety_margin: int) -> None:
        self.foldable = foldable
        self.safety_margin = safety_margin
        self._trains: dict[Any, Train] = {}

    def __len__(self) -> int:
        return len(self._trains)

    async def get_train(self, initial_state: Any) -> Train:
        """The train for ``initial_state``, created on first request."""
        train = self._trains.get(initial_state)
        if train is None:
            train = Train(self.foldable, initial_state, self.safety_margin)
            self._trains[initial_state] = train
        return train


class GlobalArchive:
    """One archive per foldable type, created on first request."""

    def __init__(self, safety_margin: int) -> None:
        self.safety_margin = safety_margin
        self._archives: dict[Any, Archive] = {}

    def __len__(self) -> int:
        return len(self._archives)

    async def get_archive(self, foldable: Any) -> Archive:
        """The archive for the foldable type ``foldable``."""
        archive = self._archives.get(foldable)
        if archive is None:
            archive = Archive(foldable, self.safety_margin)
            self._archives[foldable] = archive
        return archive