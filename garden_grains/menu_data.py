DEFAULT_MENU_ITEMS = [
    {
        "name": "Quinoa Buddha Bowl",
        "description": "Quinoa, roasted chickpeas, avocado and tahini dressing.",
        "price": 280,
        "category": "main-course",
        "preparation_time": 15,
        "customization_options": [
            {
                "name": "Protein",
                "type": "single",
                "choices": [{"name": "Tofu", "price": 40}, {"name": "Paneer", "price": 60}],
            },
            {
                "name": "Extras",
                "type": "multiple",
                "choices": [{"name": "Extra Avocado", "price": 50}, {"name": "Seeds Mix", "price": 20}],
            },
        ],
    },
    {
        "name": "Millet Khichdi",
        "description": "Foxtail millet and moong dal, tempered with ghee.",
        "price": 220,
        "category": "main-course",
        "preparation_time": 20,
    },
    {
        "name": "Roasted Tomato Soup",
        "description": "Slow roasted tomatoes with basil.",
        "price": 150,
        "category": "soups",
        "preparation_time": 10,
    },
    {
        "name": "Greek Salad",
        "description": "Cucumber, olives, feta and oregano.",
        "price": 240,
        "category": "salads",
        "preparation_time": 10,
        "customization_options": [
            {"name": "Dressing", "type": "single", "choices": [{"name": "Lemon"}, {"name": "Balsamic"}]},
        ],
    },
    {
        "name": "Cold Pressed Juice",
        "description": "Seasonal fruit, pressed to order.",
        "price": 120,
        "category": "beverages",
        "preparation_time": 5,
        "customization_options": [
            {"name": "Size", "type": "single", "choices": [{"name": "Regular"}, {"name": "Large", "price": 40}]},
        ],
    },
    {
        "name": "Ragi Brownie",
        "description": "Finger millet brownie with jaggery.",
        "price": 160,
        "category": "desserts",
        "preparation_time": 5,
    },
]
