"""SheetRAG: row-level evidence retrieval over spreadsheet cells."""
