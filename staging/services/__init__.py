"""
Services Layer

- Engines (game_parser, standings_engine, match_scheduler) are pure: snapshot
  in, result out, no database access
- Session-bound services (stats_service, ordering_service) load snapshots,
  call the engines and write results back in one transaction
- match_order_report shapes results into the endpoint JSON contracts
"""
