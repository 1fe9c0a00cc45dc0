"""Disk layout parsing, validation, planning and resize execution."""
