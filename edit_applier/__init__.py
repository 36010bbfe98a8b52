"""Edit Applier - merge sparse code edits into workspace files via a hosted apply model"""

__version__ = "1.0.0"
