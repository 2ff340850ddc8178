from decimal import Decimal

DEFAULT_MENU_ITEMS = [
    {
        "title": "Chicken Biryani",
        "description": "Aromatic basmati rice cooked with tender chicken and traditional spices",
        "price": Decimal("250.00"),
        "prep_time": 25,
        "category": "main",
    },
    {
        "title": "Paneer Butter Masala",
        "description": "Creamy tomato-based curry with soft paneer cubes",
        "price": Decimal("180.00"),
        "prep_time": 15,
        "category": "main",
    },
    {
        "title": "Veg Spring Rolls",
        "description": "Crispy rolls filled with fresh vegetables and served with sweet chili sauce",
        "price": Decimal("120.00"),
        "prep_time": 10,
        "category": "starter",
    },
    {
        "title": "Chicken 65",
        "description": "Spicy fried chicken appetizer with curry leaves and green chilies",
        "price": Decimal("160.00"),
        "prep_time": 12,
        "category": "starter",
    },
    {
        "title": "Mutton Curry",
        "description": "Traditional spicy mutton curry cooked with onions and aromatic spices",
        "price": Decimal("300.00"),
        "prep_time": 35,
        "category": "main",
    },
    {
        "title": "Fish Fry",
        "description": "Fresh fish marinated with spices and shallow fried to perfection",
        "price": Decimal("220.00"),
        "prep_time": 15,
        "category": "main",
    },
    {
        "title": "Veg Fried Rice",
        "description": "Wok-tossed rice with mixed vegetables and soy sauce",
        "price": Decimal("140.00"),
        "prep_time": 12,
        "category": "main",
    },
    {
        "title": "Chicken Tikka",
        "description": "Grilled chicken pieces marinated in yogurt and spices",
        "price": Decimal("200.00"),
        "prep_time": 20,
        "category": "starter",
    },
    {
        "title": "Masala Dosa",
        "description": "Crispy rice crepe filled with spiced potato mixture",
        "price": Decimal("80.00"),
        "prep_time": 8,
        "category": "main",
    },
    {
        "title": "Gulab Jamun",
        "description": "Sweet milk dumplings soaked in sugar syrup",
        "price": Decimal("60.00"),
        "prep_time": 5,
        "category": "dessert",
    },
]

DEFAULT_TABLE_COUNT = 10
