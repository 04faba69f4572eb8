"""
Static reference data for client intake.
Countries, NACE sectors, financial products, regional tax fields and
periodic-review intervals.

Rule tables that drive document requirements live in the policy document
(utilities/policy/default_policy.json), not here.
"""

COUNTRIES = [
    "United States", "United Kingdom", "Canada", "Australia", "Germany", "France", "Japan", "Singapore",
    "China", "India", "Brazil", "Mexico", "South Africa", "UAE", "Saudi Arabia", "Switzerland",
    "Netherlands", "Sweden", "Spain", "Italy", "Colombia", "Panama", "Ireland", "Luxembourg", "Russia", "Iran",
]

# Statistical Classification of Economic Activities in the European Community
NACE_CODES = [
    "A - Agriculture, Forestry and Fishing",
    "B - Mining and Quarrying",
    "C - Manufacturing",
    "D - Electricity, Gas, Steam and Air Conditioning Supply",
    "E - Water Supply; Sewerage, Waste Management",
    "F - Construction",
    "G - Wholesale and Retail Trade; Repair of Motor Vehicles",
    "H - Transportation and Storage",
    "I - Accommodation and Food Service Activities",
    "J - Information and Communication",
    "K - Financial and Insurance Activities",
    "L - Real Estate Activities",
    "M - Professional, Scientific and Technical Activities",
    "N - Administrative and Support Service Activities",
    "O - Public Administration and Defence",
    "P - Education",
    "Q - Human Health and Social Work Activities",
    "R - Arts, Entertainment and Recreation",
]

FINANCIAL_PRODUCTS = [
    "Business Checking Account",
    "Savings Account",
    "Corporate Credit Card",
    "Term Loan",
    "Line of Credit",
    "Trade Finance / Letter of Credit",
    "Merchant Services / Payment Processing",
    "Treasury Management",
    "Foreign Exchange Services",
    "Investment / Wealth Management",
    "Mortgage",
    "International Wire Transfers",
    "Custody Services",
]

# Tax identifiers per region: (field on TaxInfo, label, required)
TAX_REQUIREMENTS = {
    "USA": [
        ("tin", "TIN / SSN / EIN", True),
        ("fatca_status", "FATCA Status", True),
        ("giin", "GIIN", False),
    ],
    "EU": [
        ("tin", "Tax Identification Number (TIN)", True),
        ("crs_number", "CRS Classification", True),
        ("vat_number", "VAT Number", False),
    ],
    "APAC": [
        ("tin", "Tax Identification Number (TIN)", True),
        ("crs_number", "CRS / AEOI Status", True),
    ],
}

# Years until the next scheduled periodic review, by final risk level
REVIEW_INTERVAL_YEARS = {
    "High": 1,
    "Medium": 3,
    "Low": 5,
}
