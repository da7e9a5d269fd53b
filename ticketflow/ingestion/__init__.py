"""Loading typed rows from spreadsheet exports."""
