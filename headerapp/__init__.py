# headerapp/__init__.py
"""
Keep this file minimal so 'headerapp' is always a proper package.

Do NOT import submodules here (e.g., don't import main or engine).
Tests and runtime should import from 'headerapp.main' directly:
    from headerapp.main import create_app
And Uvicorn should use:
    uvicorn headerapp.main:create_app --factory
"""
