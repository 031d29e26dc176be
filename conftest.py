# Keeps the repository root importable (``main``) when running ``pytest``
# from a source checkout without installing the package.
