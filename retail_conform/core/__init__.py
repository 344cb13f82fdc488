"""
Core conformance components: models, parsers, rules, normalizer,
reconciler, deduplicator and the conformance engine.
"""
