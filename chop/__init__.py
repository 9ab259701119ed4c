"""chop static site builder.

chop renders one tree of frontmatter documents into several output
formats at once (HTML, Gemini, plain text...), one per template
directory, and copies optimized static assets next to each of them.

The main entry point is the CLI module; build_site in chop.build is the
library entry point.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
