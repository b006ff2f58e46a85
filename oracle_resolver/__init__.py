"""
OracleMarkets resolver - detects ended prediction markets, gathers
evidence, infers an outcome with an LLM and commits it on-chain once.

Layers:
  chain/       - OracleMarkets contract client (reads, writes, event logs)
  evidence/    - Third-party data clients and the category-driven aggregator
  resolution/  - Candidate types, prompt, inference engine, confidence gate
  resolver/    - Guard, submitter, listener, scanner, service and CLI
"""

__version__ = "0.1.0"
