"""
Database Schema Definition

Clinic database schema: staff users, patients, doctors, health insurers,
appointments, payments and medical records, with the indexes the report
queries rely on.

Author: MediConnect Team
"""

from typing import Dict, List


def get_schema_sql() -> str:
    """Get the complete database schema SQL"""
    return """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    role TEXT NOT NULL DEFAULT 'receptionist',
    is_active BOOLEAN DEFAULT 1
);

CREATE TABLE IF NOT EXISTS health_insurances (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    is_active BOOLEAN DEFAULT 1
);

CREATE TABLE IF NOT EXISTS patients (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    cpf TEXT,
    birth_date DATE,
    gender TEXT,
    phone TEXT,
    email TEXT,
    health_insurance TEXT,
    registration_date DATE,
    last_appointment_date DATE,
    total_appointments INTEGER DEFAULT 0,
    is_active BOOLEAN DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_patients_active ON patients(is_active);
CREATE INDEX IF NOT EXISTS idx_patients_name ON patients(name);

CREATE TABLE IF NOT EXISTS doctors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    crm TEXT,
    crm_state TEXT,
    specialty TEXT,
    sub_specialties TEXT,
    email TEXT,
    phone TEXT,
    consultation_price NUMERIC,
    consultation_duration INTEGER,
    accepts_health_insurance BOOLEAN DEFAULT 1,
    is_active BOOLEAN DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_doctors_active ON doctors(is_active);

CREATE TABLE IF NOT EXISTS appointments (
    id TEXT PRIMARY KEY,
    patient_id TEXT REFERENCES patients(id),
    doctor_id TEXT REFERENCES doctors(id),
    appointment_date DATE NOT NULL,
    appointment_time TEXT,
    status TEXT DEFAULT 'scheduled',
    appointment_type TEXT DEFAULT 'first_visit',
    duration INTEGER,
    price NUMERIC
);

CREATE INDEX IF NOT EXISTS idx_appointments_date ON appointments(appointment_date);
CREATE INDEX IF NOT EXISTS idx_appointments_doctor ON appointments(doctor_id);
CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status);

CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    patient_id TEXT REFERENCES patients(id),
    appointment_id TEXT REFERENCES appointments(id),
    health_insurance_id TEXT REFERENCES health_insurances(id),
    amount NUMERIC NOT NULL,
    amount_paid NUMERIC DEFAULT 0,
    discount NUMERIC DEFAULT 0,
    payment_method TEXT NOT NULL,
    payment_status TEXT NOT NULL DEFAULT 'pending',
    payment_date DATE,
    due_date DATE,
    receipt_number TEXT UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(payment_status);
CREATE INDEX IF NOT EXISTS idx_payments_date ON payments(payment_date);
CREATE INDEX IF NOT EXISTS idx_payments_appointment ON payments(appointment_id);

CREATE TABLE IF NOT EXISTS medical_records (
    id TEXT PRIMARY KEY,
    patient_id TEXT REFERENCES patients(id),
    doctor_id TEXT REFERENCES doctors(id),
    appointment_id TEXT REFERENCES appointments(id),
    consultation_date DATE NOT NULL,
    chief_complaint TEXT,
    diagnosis_primary TEXT,
    record_status TEXT NOT NULL DEFAULT 'draft',
    prescription TEXT,
    medications_prescribed TEXT,
    lab_tests_requested TEXT,
    imaging_requested TEXT
);

CREATE INDEX IF NOT EXISTS idx_medical_records_date ON medical_records(consultation_date);
CREATE INDEX IF NOT EXISTS idx_medical_records_status ON medical_records(record_status)
"""


# Column names per table, used to validate identifiers before they reach SQL
TABLE_COLUMNS: Dict[str, List[str]] = {
    'users': ['id', 'name', 'email', 'role', 'is_active'],
    'health_insurances': ['id', 'name', 'is_active'],
    'patients': [
        'id', 'name', 'cpf', 'birth_date', 'gender', 'phone', 'email',
        'health_insurance', 'registration_date', 'last_appointment_date',
        'total_appointments', 'is_active'
    ],
    'doctors': [
        'id', 'name', 'crm', 'crm_state', 'specialty', 'sub_specialties',
        'email', 'phone', 'consultation_price', 'consultation_duration',
        'accepts_health_insurance', 'is_active'
    ],
    'appointments': [
        'id', 'patient_id', 'doctor_id', 'appointment_date', 'appointment_time',
        'status', 'appointment_type', 'duration', 'price'
    ],
    'payments': [
        'id', 'patient_id', 'appointment_id', 'health_insurance_id', 'amount',
        'amount_paid', 'discount', 'payment_method', 'payment_status',
        'payment_date', 'due_date', 'receipt_number'
    ],
    'medical_records': [
        'id', 'patient_id', 'doctor_id', 'appointment_id', 'consultation_date',
        'chief_complaint', 'diagnosis_primary', 'record_status', 'prescription',
        'medications_prescribed', 'lab_tests_requested', 'imaging_requested'
    ],
}


def get_table_columns(table_name: str) -> List[str]:
    """Get the declared columns of a table (empty list for unknown tables)"""
    return TABLE_COLUMNS.get(table_name, [])
