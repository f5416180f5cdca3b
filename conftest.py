import pytest

from record_normalization import normalize_record


def _record(**fields):
    return normalize_record(fields)


@pytest.fixture
def make_record():
    """Factory: canonical record from raw keyword fields."""
    return _record


@pytest.fixture
def internal_trio():
    """Three internal records, two passing and one failing."""
    return [
        _record(batchId="B-001", assembly_start="2024-01-05", source="Internal", hasErrors=False),
        _record(batchId="B-002", assembly_start="2024-01-12", source="Internal", hasErrors=False),
        _record(batchId="B-003", assembly_start="2024-02-02", source="Internal", hasErrors=True,
                errorTypes="Missing Signature"),
    ]


@pytest.fixture
def sample_records():
    """Mixed internal/external/process records across a few months."""
    return [
        _record(batchId="B-101", lot="L-1", assembly_start="2024-01-03", assembly_finish="2024-01-05",
                packaging_start="2024-01-08", packaging_finish="2024-01-09",
                date_pci_l_a_br_review_date="2024-01-10", date_nn_l_a_br_review_date="2024-01-12",
                release="2024-01-20", source="Internal", errorTypes="Production Record, QC Checklist",
                cycleTime=17),
        _record(batchId="B-102", lot="L-2", assembly_start="2024-02-07", assembly_finish="2024-02-08",
                packaging_start="2024-02-10", packaging_finish="2024-02-12",
                date_pci_l_a_br_review_date="2024-02-13", date_nn_l_a_br_review_date="2024-02-14",
                release="2024-02-25", source="Process", hasErrors=False, cycleTime=18),
        _record(batchId="B-103", lot="L-3", assembly_start="2024-03-04", assembly_finish="2024-03-06",
                packaging_start="2024-03-09", packaging_finish="2024-03-10",
                date_pci_l_a_br_review_date="2024-03-11", date_nn_l_a_br_review_date="2024-03-15",
                release="2024-03-22", source="Internal", errorTypes=["Production Record"], cycleTime=18),
        _record(batchId="C-201", assembly_start="2024-02-20", source="External", errorTypes="Delivery",
                status="Closed", feedback="Shipment delay caused a problem"),
        _record(batchId="C-202", assembly_start="2024-03-18", source="External", errorTypes="Delivery",
                status="Open", feedback="Another delay, poor communication"),
        _record(batchId="C-203", assembly_start="2024-03-25", source="External", hasErrors=False,
                status="Closed", feedback="Resolved quickly, thank you"),
    ]
