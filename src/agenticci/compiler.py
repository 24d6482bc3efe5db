# compiler.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import CompilerConfig
from .constants import AGENT_JOB, CONCLUSION_JOB
from .core_jobs import build_activation_job, build_conclusion_job, build_detection_job, build_main_job
from .custom_jobs import (
    build_custom_job,
    build_push_repo_memory_job,
    build_update_cache_memory_job,
    order_custom_jobs,
)
from .errors import ValidationWarning
from .gating import build_pre_activation_job
from .graph import JobGraphStore
from .ir import SafeOutputsConfig, WorkflowIR
from .safe_outputs import SafeOutputContext, apply_project_defaults, build_safe_output_jobs
from .validation import run_validators

log = logging.getLogger(__name__)


@dataclass
class CompileResult:
    store: JobGraphStore
    warnings: List[ValidationWarning] = field(default_factory=list)
    strict: bool = False


class Compiler:
    """
    Turns a WorkflowIR into a JobGraphStore.

    Phases run in a fixed order and each one only depends on jobs added by an
    earlier phase:

      0. gate validators (abort before anything is built)
      1. pre-activation (only when a gating check is enabled)
      2. activation
      3. agent, then detection when threat detection is on
      4. one job per enabled safe-output kind
      5. custom jobs, then persistence jobs (deferred onto the conclusion job)
      6. conclusion, followed by the single deferred-wiring pass

    A Compiler holds no per-compilation state, so one instance can compile
    many workflows and separate instances can run concurrently.
    """

    def __init__(self, config: CompilerConfig | None = None):
        self.config = config or CompilerConfig()

    def compile(self, ir: WorkflowIR) -> CompileResult:
        """
        Raises:
            CompileError: a gate validator failed, or the job graph is invalid
                (duplicate job name, dependency on a job that does not exist).
        """
        strict = self.config.effective_strict(ir.strict)
        log.debug("Compiling workflow '%s' (strict=%s)", ir.name, strict)

        warnings = run_validators(ir, strict)
        for warning in warnings:
            log.warning("%s: %s", warning.check, warning.message)

        store = JobGraphStore()
        safe_outputs = apply_project_defaults(ir)
        has_safe_outputs = safe_outputs is not None and safe_outputs.any_enabled()
        threat_detection = has_safe_outputs and safe_outputs.threat_detection
        conclusion_needs: List[str] = []

        # 1. gating
        pre_activation = build_pre_activation_job(ir, self.config)
        if pre_activation is not None:
            store.add_job(pre_activation)
            conclusion_needs.append(pre_activation.name)

        # 2. activation
        activation = build_activation_job(ir, self.config, has_gating_job=pre_activation is not None)
        store.add_job(activation)
        conclusion_needs.append(activation.name)

        # 3. main job (+ threat detection)
        store.add_job(build_main_job(ir, self.config, safe_outputs, threat_detection))
        conclusion_needs.append(AGENT_JOB)
        if threat_detection:
            detection = build_detection_job(self.config)
            store.add_job(detection)
            conclusion_needs.append(detection.name)

        # 4. safe outputs
        if has_safe_outputs:
            conclusion_needs.extend(self._add_safe_output_jobs(store, ir, safe_outputs))

        # 5. custom jobs and persistence
        for decl in order_custom_jobs(ir.custom_jobs, store.names()):
            store.add_job(build_custom_job(decl, activation_exists=True))

        push_job = build_push_repo_memory_job(ir.repo_memory, self.config, threat_detection)
        if push_job is not None:
            store.add_job(push_job)
            store.defer_needs(CONCLUSION_JOB, push_job.name)

        cache_job = build_update_cache_memory_job(ir.cache_memory, self.config, threat_detection)
        if cache_job is not None:
            store.add_job(cache_job)
            store.defer_needs(CONCLUSION_JOB, cache_job.name)

        # 6. conclusion
        store.add_job(build_conclusion_job(ir, self.config, conclusion_needs))
        store.apply_deferred_needs()

        log.debug("Compiled %d jobs: %s", len(store), store.names())
        return CompileResult(store=store, warnings=list(warnings), strict=strict)

    def _add_safe_output_jobs(
        self,
        store: JobGraphStore,
        ir: WorkflowIR,
        safe_outputs: SafeOutputsConfig,
    ) -> List[str]:
        ctx = SafeOutputContext(ir=ir, safe_outputs=safe_outputs, main_job=AGENT_JOB, config=self.config)
        names = []
        for job in build_safe_output_jobs(ctx):
            store.add_job(job)
            names.append(job.name)
        return names


def compile_workflow(ir: WorkflowIR, config: Optional[CompilerConfig] = None) -> CompileResult:
    return Compiler(config).compile(ir)
