#!/usr/bin/env python3
"""
Seed the SQL document store with fake programme data.

Writes farmers, training sessions, offtakes, requisitions, animal-health
activities and user profiles across the KPMD and RANGE programmes. A share
of records uses the older field spellings (``Region``, ``topicTrained``,
``vaccinetype`` ...) so the normaliser has something to chew on.

Usage:
    DB_URI=sqlite:///fieldops.db python scripts/seed_sample_data.py
"""

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import delete, insert

from fieldops.config import KNOWN_PROGRAMMES, UNRESTRICTED_ROLE
from fieldops.database import documents, init_engine, metadata

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_FARMERS = 120
NUM_TRAININGS = 40
NUM_OFFTAKES = 80
NUM_REQUISITIONS = 50
NUM_HEALTH_ACTIVITIES = 40
LEGACY_SHARE = 0.3

COUNTIES = {
    "Turkana": ["Loima", "Turkana Central", "Turkana South"],
    "Marsabit": ["Saku", "Laisamis", "North Horr"],
    "Isiolo": ["Isiolo North", "Isiolo South"],
    "Samburu": ["Samburu East", "Samburu North"],
    "Garissa": ["Dadaab", "Fafi", "Lagdera"],
}
TOPICS = ["Pasture management", "Goat husbandry", "Animal health", "Market linkages", "Record keeping"]
VACCINES = ["PPR", "CCPP", "Sheep and goat pox", "Anthrax", "LSD"]
ISSUES = ["Tick infestation", "Worm load", "Foot rot", "Mange"]
REQUISITION_TYPES = ["fuel and service", "perdiem"]
STATUSES = ["pending", "approved", "rejected"]

USERS = {
    "admin-1": {"role": UNRESTRICTED_ROLE, "allowedProgrammes": {"KPMD": True, "RANGE": True}},
    "kpmd-officer": {"role": "field-officer", "allowedProgrammes": {"KPMD": True, "RANGE": False}},
    "range-officer": {"role": "field-officer", "allowedProgrammes": {"KPMD": False, "RANGE": True}},
    "both-officer": {"role": "field-officer", "allowedProgrammes": {"KPMD": True, "RANGE": True}},
    "no-access": {"role": "field-officer", "allowedProgrammes": {}},
}

# --------------------------------------------------------------------
# SETUP
# --------------------------------------------------------------------
fake = Faker()
random.seed(42)
Faker.seed(42)

OFFICERS = [fake.name() for _ in range(8)]


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_bool(p_true=0.5):
    return random.random() < p_true


def random_datetime_within(days_back=540):
    now = datetime.now()
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


def epoch_ms(dt):
    return int(dt.timestamp() * 1000)


def place():
    county = random.choice(list(COUNTIES))
    return county, random.choice(COUNTIES[county])


def county_field(county):
    """Current or legacy spelling of the county field."""
    if random_bool(LEGACY_SHARE):
        return {random.choice(["Region", "region", "County"]): county}
    return {"county": county}


# --------------------------------------------------------------------
# DOCUMENT BUILDERS
# --------------------------------------------------------------------
def make_farmer():
    county, subcounty = place()
    created = random_datetime_within()
    goats = random.randint(0, 60)
    male = random.randint(0, goats)
    doc = {
        "programme": random.choice(KNOWN_PROGRAMMES),
        "farmerId": f"F{fake.random_int(10000, 99999)}",
        "name": fake.name(),
        "gender": random.choice(["Male", "Female", "female", "M", "F", ""]),
        "idNumber": str(fake.random_int(10000000, 39999999)),
        "phone": fake.msisdn()[:10],
        "subcounty": subcounty,
        "location": fake.city(),
        "sheep": random.randint(0, 30),
        "cattle": random.randint(0, 15),
        "vaccinated": random_bool(0.6),
        "dewormed": random_bool(0.5),
        "traceability": random_bool(0.3),
        "aggregationGroup": f"Group {random.randint(1, 12)}",
        "bucksServed": random.randint(0, 5),
        "username": random.choice(OFFICERS),
        **county_field(county),
    }
    if random_bool(LEGACY_SHARE):
        doc["goats"] = goats
        doc["landSize"] = str(round(random.uniform(0, 40), 1))
        doc["registrationDate"] = created.strftime("%Y-%m-%d")
    else:
        doc["goats"] = {"total": goats, "male": male, "female": goats - male}
        doc["totalAcresPasture"] = round(random.uniform(0, 40), 1)
        doc["createdAt"] = epoch_ms(created)
    return doc


def make_training():
    county, subcounty = place()
    start = random_datetime_within()
    male = random.randint(0, 30)
    female = random.randint(0, 30)
    return {
        "programme": random.choice(KNOWN_PROGRAMMES),
        ("Modules" if random_bool(LEGACY_SHARE) else "topicTrained"): random.choice(TOPICS),
        "subcounty": subcounty,
        "location": fake.city(),
        "totalFarmers": male + female,
        "maleFarmers": male,
        "femaleFarmers": female,
        "fieldOfficer": random.choice(OFFICERS),
        "startDate": start.strftime("%Y-%m-%d"),
        "endDate": (start + timedelta(days=random.randint(0, 3))).strftime("%Y-%m-%d"),
        **county_field(county),
    }


def make_animal():
    live = round(random.uniform(18, 45), 1)
    return {
        "live": live,
        "carcass": round(live * random.uniform(0.4, 0.55), 1),
        "price": random.randint(4000, 12000),
    }


def make_offtake():
    county, _ = place()
    goats = [make_animal() for _ in range(random.randint(1, 8))]
    sheep = [make_animal() for _ in range(random.randint(0, 2))]
    return {
        "programme": random.choice(KNOWN_PROGRAMMES),
        "date": epoch_ms(random_datetime_within()),
        "farmerName": fake.name(),
        "gender": random.choice(["Male", "Female"]),
        "idNumber": str(fake.random_int(10000000, 39999999)),
        "phone": fake.msisdn()[:10],
        "county": county,
        "location": fake.city(),
        "goats": goats,
        "sheep": sheep,
        "totalGoats": len(goats),
        "totalPrice": sum(a["price"] for a in goats + sheep),
        "username": random.choice(OFFICERS),
    }


def make_requisition():
    county, subcounty = place()
    kind = random.choice(REQUISITION_TYPES)
    doc = {
        "programme": random.choice(KNOWN_PROGRAMMES),
        "type": kind,
        "status": random.choice(STATUSES),
        random.choice(["name", "userName", "username"]): random.choice(OFFICERS),
        "county": county,
        "subcounty": subcounty,
        "submittedAt": random_datetime_within().isoformat(),
    }
    if kind == "perdiem":
        doc["items"] = [
            {"name": random.choice(["Lunch", "Accommodation", "Transport"]), "price": random.randint(500, 4000)}
            for _ in range(random.randint(1, 4))
        ]
        doc["numberOfDays"] = random.randint(1, 5)
    else:
        doc["fuelAmount"] = random.randint(2000, 15000)
        doc["distanceTraveled"] = random.randint(20, 400)
        doc["tripPurpose"] = fake.sentence(nb_words=6)
    return doc


def make_health_activity():
    county, subcounty = place()
    doc = {
        "programme": random.choice(KNOWN_PROGRAMMES),
        "date": random_datetime_within().strftime("%d %b %Y"),
        "county": county,
        "subcounty": subcounty,
        "location": fake.city(),
        ("maleneneficiaries" if random_bool(LEGACY_SHARE) else "malebeneficiaries"): random.randint(0, 40),
        "femalebeneficiaries": random.randint(0, 40),
        "fieldofficers": random.sample(OFFICERS, k=random.randint(1, 3)),
        "issues": random.sample(ISSUES, k=random.randint(0, 2)),
        "comment": fake.sentence(nb_words=8),
        "createdBy": random.choice(OFFICERS),
        "status": "completed",
    }
    if random_bool(LEGACY_SHARE):
        doc["vaccinetype"] = random.choice(VACCINES)
        doc["number_doses"] = random.randint(10, 300)
    else:
        doc["vaccines"] = [
            {"type": v, "doses": random.randint(10, 300)}
            for v in random.sample(VACCINES, k=random.randint(1, 3))
        ]
    return doc


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_collection(conn, collection, builder, n):
    rows = [
        {"collection": collection, "key": f"{collection[:3].lower()}-{i:04d}", "doc": builder()}
        for i in range(n)
    ]
    conn.execute(delete(documents).where(documents.c.collection == collection))
    conn.execute(insert(documents), rows)
    return len(rows)


def seed_users(conn):
    rows = [{"collection": "users", "key": uid, "doc": {**profile, "uid": uid}} for uid, profile in USERS.items()]
    conn.execute(delete(documents).where(documents.c.collection == "users"))
    conn.execute(insert(documents), rows)
    return len(rows)


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = init_engine()
    metadata.create_all(engine)
    with engine.begin() as conn:
        print("Seeding users...")
        seed_users(conn)

        print("Seeding farmers...")
        seed_collection(conn, "farmers", make_farmer, NUM_FARMERS)

        print("Seeding capacity building...")
        seed_collection(conn, "capacityBuilding", make_training, NUM_TRAININGS)

        print("Seeding offtakes...")
        seed_collection(conn, "offtakes", make_offtake, NUM_OFFTAKES)

        print("Seeding requisitions...")
        seed_collection(conn, "requisitions", make_requisition, NUM_REQUISITIONS)

        print("Seeding animal health activities...")
        seed_collection(conn, "AnimalHealthActivities", make_health_activity, NUM_HEALTH_ACTIVITIES)

        print("Done!")
        print(f"Users: {', '.join(USERS)}  (mint a token with scripts/issue_token.py <uid>)")


if __name__ == "__main__":
    main()
