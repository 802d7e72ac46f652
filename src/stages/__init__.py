"""
Pipeline stages package.

Each stage module follows a consistent pattern:
- Docstring with Purpose, Input/Output files documented
- STAGE_INDEX and STAGE_NAME constants
- run(ctx) as the entry point, made of idempotent ctx.step() calls
"""
