"""Service layer for streak resolution.

Services encapsulate all business logic, keeping routes thin and focused
on HTTP handling.

Layer hierarchy:
    Routes (HTTP) -> StreakService -> StreakCache -> upstream client
                                                     (GitHub | Duolingo)

Services should:
- Raise the typed errors from services.upstream
- Not contain HTTP-specific logic (status codes, response formatting)
"""
