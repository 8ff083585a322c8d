"""Seed definitions for service locations.

Coordinates deliberately use every accepted shape so a fresh database
exercises the normalizer; one record has none and shows up without a map pin.
"""

LOCATIONS = [
    {
        'id': 'royal-hospital',
        'name': 'Royal Hospital',
        'category': 'hospital',
        'services': ['Emergency', 'Outpatient Clinic', 'Pharmacy'],
        'address': 'Al Ghubra Street, Muscat',
        'coords': {'latitude': 23.5859, 'longitude': 58.4059},
        'phone': '+968 2459 9000',
        'hours': 'Open 24 hours',
    },
    {
        'id': 'city-bank-ruwi',
        'name': 'City Bank Ruwi',
        'category': 'bank',
        'services': ['Account Opening', 'Cash Deposit', 'Loan Enquiry'],
        'address': 'Ruwi High Street, Muscat',
        'coords': {'lat': 23.5957, 'lng': 58.5456},
        'phone': '+968 2470 1234',
        'hours': 'Sun-Thu 08:00-14:00',
    },
    {
        'id': 'harbour-cafe',
        'name': 'Harbour Cafe',
        'category': 'cafe',
        'services': ['Takeaway', 'Table Service'],
        'address': 'Mutrah Corniche, Muscat',
        'coords': {'_lat': 23.6215, '_long': 58.5658},
        'phone': '+968 2471 5555',
        'hours': 'Daily 07:00-23:00',
    },
    {
        'id': 'spice-route-restaurant',
        'name': 'Spice Route Restaurant',
        'category': 'Restaurant',
        'services': ['Dine In', 'Reservations'],
        'address': 'Shatti Al Qurum, Muscat',
        'coords': [23.6133, 58.4728],
        'phone': '+968 2460 2222',
        'hours': 'Daily 12:00-00:00',
    },
    {
        'id': 'municipal-service-centre',
        'name': 'Municipal Service Centre',
        'category': 'government',
        'services': [],
        'address': 'Al Khuwair, Muscat',
        'coords': None,
        'phone': None,
        'hours': 'Sun-Thu 07:30-14:30',
    },
]
