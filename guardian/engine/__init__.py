# ============================================================================
# guardian/engine/__init__.py
# Analysis Engine Package
# ============================================================================
#
# PURPOSE:
# Turns one transaction into one report.
#
# MODULES IN THIS PACKAGE:
# - **matcher.py**: evaluates every catalog pattern against the input
# - **aggregator.py**: matches -> issues, ordering, merge, risk score
# - **warnings.py**: warning factories and read-time freshness
# - **assembler.py**: builds the final GuardianCheckResponse
# - **service.py**: orchestration (simulation, bytecode check, LLM, sharing)
#
# DATA FLOW:
# AnalysisData -> PatternMatcher -> aggregate -> LLMAugmenter -> merge -> ReportAssembler
#
# ============================================================================
