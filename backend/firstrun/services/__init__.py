"""
Services Module

The initialization engine, leaves first:
- providers: provider configuration variants and validation
- deployment_context: environment context resolver
- connection_tester: connection verifier (retry + schema check)
- provider_selector: provider -> storage capability, with fallback
- env_file: generated .env files, backups, deployment instructions
- init_state: initialization marker store
- database_configs: backup configuration store
- initialization: the orchestrator

Submodules are imported directly; the storage package depends on
``providers`` so nothing is re-exported here.
"""
