"""Processing Modules

This package contains the processing modules of the conflation engine. Each
module implements the ModuleProcessor interface and can be driven by a
scheduler or from the command line.
"""
