# ============================================================================
# guardian/__init__.py
# Package Marker for the Guardian analysis engine
# ============================================================================
#
# PURPOSE:
# Pre-execution risk analysis for blockchain transactions. The deterministic
# pattern engine lives in guardian.patterns and guardian.engine; the optional
# LLM second opinion lives in guardian.ai; the HTTP surface in guardian.server.
#
# ============================================================================

__version__ = "1.0.0"
