"""recordcast test suite.

Test organization:
- unit/test_types.py: Field casting per type tag
- unit/test_engine.py: validate() input shapes, required checks, embeds
- unit/test_rules.py: Rule clauses and the binding environment
- unit/test_loader.py: YAML schema documents
- unit/test_batch.py: Thread-pool and DataFrame validation
- unit/test_cli.py: python -m recordcast
"""
