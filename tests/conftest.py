"""
================================================================================
MediConnect Reports - Unified Test Configuration and Fixtures
================================================================================
Description:
    Shared pytest configuration and fixtures for all tests (unit, integration, API).
    Provides reusable clinic data, a seeded temporary database and an API client.

Fixtures:
    - temp_dir: Temporary directory for test files
    - sample_*_data: Sample clinic DataFrames (one per table)
    - seeded_db: Temporary DatabaseManager loaded with the sample data
    - report_service: ReportService bound to the seeded database
    - client: FastAPI test client serving the seeded database

Seeded scenario (January 2025):
    - Settled payments: 100.00 paid + 50.00 partially paid (10.00 discount)
    - Pending payments: 30.00
    - Dashboard on 2025-01-20: 2 active users, 1 upcoming appointment (a4)
    - Active patient ages on 2025-06-01: 5, 17, 18, 45, 61
================================================================================
"""
import os
import pytest
import pandas as pd
import tempfile
import shutil
import sys
from datetime import date
from pathlib import Path

# Testing environment disables file logging; must be set before config import
os.environ.setdefault('MEDICONNECT_ENVIRONMENT', 'testing')

# Add project root to path for all tests
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Reference date for age calculations
AGE_REFERENCE_DATE = date(2025, 6, 1)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_users_data():
    """Sample staff users: two active, one inactive"""
    return pd.DataFrame({
        'id': ['u1', 'u2', 'u3'],
        'name': ['Marta Admin', 'Rita Recepcao', 'Old Account'],
        'email': ['marta@clinic.com', 'rita@clinic.com', 'old@clinic.com'],
        'role': ['admin', 'receptionist', 'doctor'],
        'is_active': [1, 1, 0]
    })


@pytest.fixture
def sample_health_insurances_data():
    """Sample health insurers"""
    return pd.DataFrame({
        'id': ['hi1', 'hi2'],
        'name': ['Unimed', 'Amil'],
        'is_active': [1, 1]
    })


@pytest.fixture
def sample_patients_data():
    """Sample patients: five active, one inactive"""
    return pd.DataFrame({
        'id': ['p1', 'p2', 'p3', 'p4', 'p5', 'p6'],
        'name': ['Ana Souza', 'Bruno Lima', 'Carlos Dias', 'Daniela Rocha', 'Elisa Prado', 'Fabio Nunes'],
        'cpf': ['111.111.111-11', '222.222.222-22', '333.333.333-33',
                '444.444.444-44', '555.555.555-55', '666.666.666-66'],
        'birth_date': ['2020-01-15', '2007-06-02', '2007-01-10', '1980-03-20', '1964-02-01', '1990-05-05'],
        'gender': ['F', 'M', 'M', 'F', 'F', 'M'],
        'phone': ['11 90000-0001', '11 90000-0002', '11 90000-0003',
                  '11 90000-0004', '11 90000-0005', '11 90000-0006'],
        'email': ['ana@example.com', 'bruno@example.com', 'carlos@example.com',
                  'daniela@example.com', 'elisa@example.com', 'fabio@example.com'],
        'health_insurance': ['Unimed', 'Unimed', None, 'Amil', 'Unimed', 'Amil'],
        'registration_date': ['2024-01-01', '2024-01-01', '2024-01-01', '2024-01-01', '2025-01-05', '2024-01-01'],
        'last_appointment_date': ['2025-01-10', '2025-01-15', '2025-01-20', '2025-01-25', '2025-02-05', None],
        'total_appointments': [1, 1, 1, 1, 1, 0],
        'is_active': [1, 1, 1, 1, 1, 0]
    })


@pytest.fixture
def sample_doctors_data():
    """Sample doctors: two active, one inactive"""
    return pd.DataFrame({
        'id': ['d1', 'd2', 'd3'],
        'name': ['Dr. Carla Mendes', 'Dr. Paulo Reis', 'Dr. Zeca Alves'],
        'crm': ['12345', '54321', '99999'],
        'crm_state': ['SP', 'RJ', 'MG'],
        'specialty': ['Cardiology', 'Dermatology', 'Cardiology'],
        'sub_specialties': ['["Arrhythmia"]', '[]', None],
        'email': ['carla@clinic.com', 'paulo@clinic.com', 'zeca@clinic.com'],
        'phone': ['11 3000-0001', '11 3000-0002', '11 3000-0003'],
        'consultation_price': [250.0, 180.0, 200.0],
        'consultation_duration': [30, 30, 45],
        'accepts_health_insurance': [1, 0, 1],
        'is_active': [1, 1, 0]
    })


@pytest.fixture
def sample_appointments_data():
    """Sample appointments: four in January 2025, one in February"""
    return pd.DataFrame({
        'id': ['a1', 'a2', 'a3', 'a4', 'a5'],
        'patient_id': ['p1', 'p2', 'p3', 'p4', 'p5'],
        'doctor_id': ['d1', 'd1', 'd2', 'd2', 'd1'],
        'appointment_date': ['2025-01-10', '2025-01-15', '2025-01-20', '2025-01-25', '2025-02-05'],
        'appointment_time': ['09:00', '10:00', '14:00', '15:00', '09:00'],
        'status': ['completed', 'completed', 'no_show', 'scheduled', 'completed'],
        'appointment_type': ['first_visit', 'return', 'first_visit', 'first_visit', 'return'],
        'duration': [30, 30, 30, 30, 30],
        'price': [250.0, 250.0, 180.0, 180.0, 250.0]
    })


@pytest.fixture
def sample_payments_data():
    """Sample payments: two settled in January, one pending, one settled in February"""
    return pd.DataFrame({
        'id': ['pay1', 'pay2', 'pay3', 'pay4'],
        'patient_id': ['p1', 'p2', 'p3', 'p5'],
        'appointment_id': ['a1', 'a2', 'a3', 'a5'],
        'health_insurance_id': ['hi1', None, None, None],
        'amount': [100.0, 60.0, 30.0, 250.0],
        'amount_paid': [100.0, 50.0, 0.0, 250.0],
        'discount': [0.0, 10.0, 0.0, 0.0],
        'payment_method': ['credit_card', 'cash', 'pix', 'credit_card'],
        'payment_status': ['paid', 'partially_paid', 'pending', 'paid'],
        'payment_date': ['2025-01-10', '2025-01-15', None, '2025-02-05'],
        'due_date': ['2025-01-10', '2025-01-15', '2025-01-30', '2025-02-05'],
        'receipt_number': ['R001', 'R002', 'R003', 'R004']
    })


@pytest.fixture
def sample_medical_records_data():
    """Sample medical records for January 2025"""
    return pd.DataFrame({
        'id': ['m1', 'm2', 'm3'],
        'patient_id': ['p1', 'p2', 'p3'],
        'doctor_id': ['d1', 'd1', 'd2'],
        'appointment_id': ['a1', 'a2', 'a3'],
        'consultation_date': ['2025-01-10', '2025-01-15', '2025-01-20'],
        'chief_complaint': ['Chest pain', 'Follow-up', 'Rash'],
        'diagnosis_primary': ['Hypertension', 'Hypertension', None],
        'record_status': ['completed', 'completed', 'draft'],
        'prescription': ['Losartan 50mg', None, None],
        'medications_prescribed': [None, '["Aspirin"]', '[]'],
        'lab_tests_requested': [None, 'Lipid panel', None],
        'imaging_requested': [None, None, 'Dermoscopy']
    })


@pytest.fixture
def seeded_db(temp_dir, sample_users_data, sample_health_insurances_data, sample_patients_data,
              sample_doctors_data, sample_appointments_data, sample_payments_data, sample_medical_records_data):
    """Temporary database loaded with the sample clinic data"""
    from mediconnect.database import DatabaseManager

    db_manager = DatabaseManager(temp_dir / "test_mediconnect.db")
    for table, df in [
        ('users', sample_users_data),
        ('health_insurances', sample_health_insurances_data),
        ('patients', sample_patients_data),
        ('doctors', sample_doctors_data),
        ('appointments', sample_appointments_data),
        ('payments', sample_payments_data),
        ('medical_records', sample_medical_records_data),
    ]:
        result = db_manager.load_table(table, df)
        assert result.success, result.error_message

    yield db_manager
    db_manager.close()


@pytest.fixture
def report_service(seeded_db):
    """ReportService bound to the seeded database"""
    from mediconnect.reports.service import ReportService
    return ReportService(seeded_db)


@pytest.fixture
def client(seeded_db):
    """Create a FastAPI test client serving the seeded database"""
    from fastapi.testclient import TestClient
    from mediconnect.app import app, app_state

    previous = app_state.get("db_manager")
    app_state["db_manager"] = seeded_db
    yield TestClient(app)
    app_state["db_manager"] = previous
