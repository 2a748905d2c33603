# ============================================================================
# guardian/data/__init__.py
# Data Layer Package - Persistence and Chain Lookups
# ============================================================================
#
# MODULES IN THIS PACKAGE:
# - **share_store.py**: reports persisted behind short share ids (memory / SQLite)
# - **bytecode.py**: deployed-module lookup for bytecode verification
#
# ============================================================================
