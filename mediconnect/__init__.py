"""
MediConnect

Clinic administration back end: report generation and export over
appointments, payments, patients, doctors and medical records.

Author: MediConnect Team
"""

__version__ = "1.0.0"
