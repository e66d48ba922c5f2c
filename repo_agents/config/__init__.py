"""Compiler configuration."""

from .compiler_config import ActionRefs, CompilerConfig, load_compiler_config, reset_config

__all__ = ["ActionRefs", "CompilerConfig", "load_compiler_config", "reset_config"]
