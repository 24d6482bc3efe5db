# graph.py
from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterator, List, Set, Tuple

from .errors import ContractError, DuplicateJobError, UnknownDependencyError
from .model import Job

log = logging.getLogger(__name__)


class JobGraphStore:
    """
    Ordered registry of the jobs produced by one compilation.

    Insertion is topological: a job may only need jobs that were added before
    it, so the graph cannot contain a cycle. Dependencies that must be attached
    to an existing job (persistence jobs joining the conclusion job) are
    recorded with ``defer_needs`` and applied once by ``apply_deferred_needs``.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._deferred: List[Tuple[str, str]] = []

    # ---------------------------------------------------------------------
    # Insertion / lookup
    # ---------------------------------------------------------------------

    def add_job(self, job: Job) -> None:
        """
        Raises:
            DuplicateJobError: a job with this name already exists; the
                existing job is left untouched.
            UnknownDependencyError: ``job.needs`` names a job not added yet.
        """
        if job.name in self._jobs:
            raise DuplicateJobError(job.name)
        for need in job.needs:
            if need == job.name or need not in self._jobs:
                raise UnknownDependencyError(job.name, need, list(self._jobs))
        self._jobs[job.name] = job
        log.debug("Added job '%s' (needs=%s)", job.name, job.needs)

    def get_job(self, name: str) -> Job | None:
        return self._jobs.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs.values()))

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def names(self) -> List[str]:
        return list(self._jobs)

    # ---------------------------------------------------------------------
    # Deferred wiring
    # ---------------------------------------------------------------------

    def defer_needs(self, target: str, dependency: str) -> None:
        """Record that ``target`` must also need ``dependency``."""
        if (target, dependency) not in self._deferred:
            self._deferred.append((target, dependency))

    def pending_needs(self) -> List[Tuple[str, str]]:
        return list(self._deferred)

    def apply_deferred_needs(self) -> None:
        """
        Attach every recorded dependency in a single pass.

        Duplicates (recorded twice, or already present on the target) are
        skipped. Running the pass again is a no-op.

        Raises:
            ContractError: the target job was never added.
            UnknownDependencyError: the dependency was never added.
        """
        for target, dependency in self._deferred:
            job = self._jobs.get(target)
            if job is None:
                raise ContractError(f"deferred dependency targets unknown job '{target}'")
            if dependency not in self._jobs:
                raise UnknownDependencyError(target, dependency, list(self._jobs))
            if job.add_needs(dependency):
                log.debug("Added %s dependency to %s job", dependency, target)
        self._deferred.clear()

    # ---------------------------------------------------------------------
    # Ordering
    # ---------------------------------------------------------------------

    def topo_levels(self) -> List[List[str]]:
        """
        Group jobs into topological "levels": every job in a level only needs
        jobs from earlier levels. Names within a level are sorted.
        """
        adj: Dict[str, Set[str]] = {n: set() for n in self._jobs}
        indeg: Dict[str, int] = {n: 0 for n in self._jobs}
        for job in self._jobs.values():
            for need in job.needs:
                if job.name not in adj[need]:
                    adj[need].add(job.name)
                    indeg[job.name] += 1

        q = deque(sorted(n for n, d in indeg.items() if d == 0))
        levels: List[List[str]] = []
        processed = 0

        while q:
            level: List[str] = []
            for _ in range(len(q)):
                node = q.popleft()
                level.append(node)
                processed += 1
            for node in level:
                for child in sorted(adj[node]):
                    indeg[child] -= 1
                    if indeg[child] == 0:
                        q.append(child)
            levels.append(sorted(level))

        if processed != len(indeg):
            remaining = sorted(n for n, d in indeg.items() if d > 0)
            raise ContractError(f"job graph has a cycle. Stuck jobs: {remaining}")

        return levels

    def topo_order(self) -> List[str]:
        return [name for level in self.topo_levels() for name in level]
