"""
Service layer for methylation QC.

This subpackage contains code that interacts with the outside world:
sample sheets, detection p-value matrices, SNP probe lists and figures.
"""
