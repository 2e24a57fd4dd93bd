"""
Sample catalog, quotes and projects for a fresh database.

Documents are written by fixed id, so seeding twice leaves the same data.
Run directly with `python seed.py` once DATABASE_URL and DATABASE_NAME are set.
"""
import logging
from typing import Dict

from database import DocumentStore, get_store
from dates import parse_timestamp
from estimator import estimate
from schemas import Dimensions, Product, Quote

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = {
    "prod-001": Product(
        name="Chain Link Fence - Standard", category="Chain Link", base_rate=85,
        property_types=["Residential", "Agriculture", "Sports Playground"],
        specifications={"height": "6ft", "material": "Galvanized Steel", "gauge": "11 gauge", "meshSize": "50mm"},
        installation_time="2-3 days", features=["Weather Resistant", "Low Maintenance", "Cost Effective"],
        description="Durable chain link fencing for residential and agricultural properties, made from galvanized steel.",
    ),
    "prod-002": Product(
        name="Barbed Wire Fence", category="Barbed Wire", base_rate=65,
        property_types=["Agriculture", "Open Lands", "Commercial Security"],
        specifications={"height": "5ft", "material": "Galvanized Steel", "barbType": "4-point barbs"},
        installation_time="1-2 days", features=["High Security", "Rust Resistant", "Economical"],
        description="Heavy-duty barbed wire fencing for large agricultural lands and commercial properties.",
    ),
    "prod-003": Product(
        name="Welded Mesh Fence", category="Welded Mesh", base_rate=120,
        property_types=["Residential", "Commercial Security", "Landscape"],
        specifications={"height": "6ft", "material": "MS Steel", "meshSize": "75x75mm", "finish": "Powder Coated"},
        installation_time="3-4 days", features=["Modern Design", "High Strength", "Powder Coated"],
        description="Welded mesh fencing with a modern look for homes and commercial landscapes.",
    ),
    "prod-004": Product(
        name="PVC Coated Chain Link", category="Chain Link", base_rate=110,
        installation_time="2-3 days", features=["Colour Options", "Corrosion Proof"],
        description="PVC-coated chain link in green and black for residential and sports facilities.",
    ),
    "prod-005": Product(
        name="Razor Wire Security Fence", category="Razor Wire", base_rate=95,
        installation_time="2-3 days", features=["Maximum Deterrence"],
        description="High-security razor wire for commercial properties and restricted areas.",
    ),
    "prod-006": Product(
        name="Concertina Coil Fence", category="Razor Wire", base_rate=150,
        installation_time="1 day", features=["Rapid Deployment"],
        description="Spiral razor coils used around industrial complexes.",
    ),
    "prod-007": Product(
        name="Solar Power Fence", category="Electric Fence", base_rate=200,
        installation_time="3-5 days", features=["Solar Powered", "Alarm Integration"],
        description="Active deterrent fence with a safe pulse and alarm integration.",
    ),
    "prod-008": Product(
        name="Ornamental Iron Fence", category="Metal Fence", base_rate=250,
        installation_time="4-5 days", features=["Classic Styling"],
        description="Ornamental iron fencing with the look of wrought iron.",
    ),
}

# id -> (customer id, name, email, product id, dimensions, status, created)
SAMPLE_QUOTES = {
    "quote-001": ("cust-001", "Rajesh Kumar", "rajesh.kumar@gmail.com", "prod-001", (10, 10, 6), "Pending", "2024-11-25"),
    "quote-002": ("cust-002", "Priya Sharma", "priya.sharma@gmail.com", "prod-003", (40, 25, 6), "Approved", "2024-11-18"),
    "quote-003": ("cust-003", "Mohammed Ali", "mohammed.ali@gmail.com", "prod-002", (50, 30, 8), "Approved", "2024-11-20"),
    "quote-004": ("cust-004", "Lakshmi Menon", "lakshmi.menon@gmail.com", "prod-004", (30, 20, 5), "Approved", "2024-11-08"),
    "quote-005": ("cust-001", "Rajesh Kumar", "rajesh.kumar@gmail.com", "prod-005", (20, 15, 7), "Rejected", "2024-11-12"),
}

SAMPLE_PROJECTS = {
    "proj-001": {
        "name": "PR-001", "quote_id": "quote-002", "customer_id": "cust-002", "customer_name": "Priya Sharma",
        "product_id": "prod-003", "product_name": "Welded Mesh Fence", "status": "In Progress", "progress": 65,
        "start_date": "2024-11-20", "estimated_completion": "2024-12-05", "completed_date": None,
        "milestones": [
            {"name": "Foundation", "status": "Completed", "date": "2024-11-22"},
            {"name": "Installation", "status": "In Progress", "date": None},
            {"name": "Testing", "status": "Pending", "date": None},
        ],
        "notes": ["Site preparation completed", "Material delivered on time"],
        "created_at": "2024-11-20", "updated_at": "2024-11-28",
    },
    "proj-002": {
        "name": "PR-002", "quote_id": "quote-003", "customer_id": "cust-003", "customer_name": "Mohammed Ali",
        "product_id": "prod-002", "product_name": "Barbed Wire Fence", "status": "In Progress", "progress": 40,
        "start_date": "2024-11-22", "estimated_completion": "2024-12-08", "completed_date": None,
        "milestones": [
            {"name": "Foundation", "status": "Completed", "date": "2024-11-24"},
            {"name": "Installation", "status": "In Progress", "date": None},
        ],
        "notes": ["Large area project", "Weather conditions favorable"],
        "created_at": "2024-11-22", "updated_at": "2024-11-27",
    },
    "proj-003": {
        "name": "PR-003", "quote_id": "quote-004", "customer_id": "cust-004", "customer_name": "Lakshmi Menon",
        "product_id": "prod-004", "product_name": "PVC Coated Chain Link", "status": "Completed", "progress": 100,
        "start_date": "2024-11-10", "estimated_completion": "2024-11-24", "completed_date": "2024-11-24",
        "milestones": [
            {"name": "Foundation", "status": "Completed", "date": "2024-11-12"},
            {"name": "Installation", "status": "Completed", "date": "2024-11-20"},
            {"name": "Testing", "status": "Completed", "date": "2024-11-24"},
        ],
        "notes": ["Project completed ahead of schedule", "Customer very satisfied"],
        "created_at": "2024-11-10", "updated_at": "2024-11-24",
    },
}


def _quote_document(quote_id: str) -> Quote:
    customer_id, name, email, product_id, (length, width, height), status, created = SAMPLE_QUOTES[quote_id]
    product = SAMPLE_PRODUCTS[product_id]
    breakdown = estimate(length, width, height, product.base_rate)
    created_at = parse_timestamp(created)
    return Quote(
        customer_id=customer_id,
        customer_name=name,
        customer_email=email,
        product_id=product_id,
        product_name=product.name,
        dimensions=Dimensions(length=length, width=width, height=height),
        area=breakdown.area,
        cost_breakdown=breakdown.costs(),
        status=status,
        description=f"Fencing project: {product.name} - {breakdown.area:.2f} sq ft",
        is_read=True,
        created_at=created_at,
        updated_at=created_at,
    )


def seed_database(store: DocumentStore) -> Dict[str, int]:
    for product_id, product in SAMPLE_PRODUCTS.items():
        store.upsert("products", product_id, product)
    logger.info("Seeded %d products", len(SAMPLE_PRODUCTS))

    for quote_id in SAMPLE_QUOTES:
        store.upsert("quotes", quote_id, _quote_document(quote_id))
    logger.info("Seeded %d quotes", len(SAMPLE_QUOTES))

    for project_id, project in SAMPLE_PROJECTS.items():
        doc = dict(project)
        doc["created_at"] = parse_timestamp(doc["created_at"])
        doc["updated_at"] = parse_timestamp(doc["updated_at"])
        store.upsert("projects", project_id, doc)
    logger.info("Seeded %d projects", len(SAMPLE_PROJECTS))

    return {"products": len(SAMPLE_PRODUCTS), "quotes": len(SAMPLE_QUOTES), "projects": len(SAMPLE_PROJECTS)}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    counts = seed_database(get_store())
    logger.info("Database seeding completed: %s", counts)
