from .compiler import Compiler, CompileResult, compile_workflow
from .config import CompilerConfig
from .errors import CompileError, ContractError, LoadError
from .graph import JobGraphStore
from .loader import load_workflow, parse_frontmatter
from .model import Job, Step

__all__ = [
    "Compiler",
    "CompileResult",
    "compile_workflow",
    "CompilerConfig",
    "CompileError",
    "ContractError",
    "LoadError",
    "JobGraphStore",
    "load_workflow",
    "parse_frontmatter",
    "Job",
    "Step",
]
