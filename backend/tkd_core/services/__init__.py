"""
Services Layer

- Pure engine: division_rules, division_classifier, seeding, bracket_builder,
  advancement_service (no I/O; storage only through a MatchRepository)
- Session-backed orchestration: division_service, bracket_service,
  match_service, results_service (read/write via SQLModel, raise domain errors)
- Do NOT depend on HTTP request/response objects
"""
