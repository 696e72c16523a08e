"""Data loaders: the Supabase fetch layer and the offline workbook loader.

Import the submodules directly (loaders.supabase_source, loaders.workbook);
they depend on finboard.transforms, which itself uses loaders.utils.
"""
