"""Payroll and leave calculators.

Modules are imported directly (``tutorpay.calculators.payroll`` etc.); the
public API is re-exported from ``tutorpay``.
"""
