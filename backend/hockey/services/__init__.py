"""
Services Layer

Business logic for the tournament core:
- bracket_generator / match_results / standings_service: the match tree and its outcomes
- tournament_state_machine: the only writer of Tournament.status
- waitlist_service: registration, waitlist ordering, manual payments
- background: periodic maintenance jobs

Services accept a Session and domain inputs, return models or dicts, raise
hockey.exceptions errors, and never touch HTTP request/response objects.
"""
