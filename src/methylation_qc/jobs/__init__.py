"""
PyPipeGraph2 jobs for methylation QC reports.
"""
