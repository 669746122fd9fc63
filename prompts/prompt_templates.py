# prompts/prompt_templates.py
# Prompt text for the model-backed classifier and the PDF menu parser.
# Literal JSON braces are doubled because these strings go through ChatPromptTemplate.

PAGE_CLASSIFICATION_PROMPT = """
You are an expert at analysing restaurant websites. Decide whether the web page
below IS a restaurant menu, i.e. a page that lists multiple specific food or drink
items, usually with prices and often with descriptions and section headings.

A page is NOT a menu when it only:
- mentions food in general terms ("delicious Italian cuisine", "fresh seafood")
- describes the restaurant, its story, hours, location or reservations
- links to a menu that lives somewhere else
- shows a handful of featured dishes on a homepage

Count the specific menu items you can see.

Return ONLY a JSON object, no commentary:
{{
  "isMenu": true or false,
  "confidence": a number from 0 to 100,
  "reason": "one sentence explaining the decision",
  "menuItemsFound": number of distinct menu items you found
}}
"""

PAGE_CLASSIFICATION_HUMAN = """
URL: {url}

PAGE CONTENT:
{page_text}
"""

MENU_LINKS_PROMPT = """
You are an expert at navigating restaurant websites. Given a digest of a page's
links, buttons and navigation, find the URLs most likely to lead to the restaurant's
food or drink menu.

Look for:
- links or buttons labelled "Menu", "Food", "Our Menu", "View Menu", "Eat", "Dining",
  "Lunch", "Dinner", "Drinks", "Dessert" or similar, in any language
- links to PDF files that are probably menus
- online ordering systems that show the full menu (Toast, Square, ChowNow, etc.)

For each candidate give a confidence from 0 to 100, a short reason, a type
("direct" for an HTML menu page, "pdf" for a PDF file, "ordering-system" for an
online ordering platform) and, when the link covers one part of the menu, a short
category label such as "Lunch", "Drinks" or "Desserts".

Set hasHiddenMenu to true when the menu seems to be embedded on this page behind
tabs, accordions or JavaScript rather than on a separate page.

Return ONLY a JSON object, no commentary:
{{
  "menuUrls": [
    {{"url": "https://...", "confidence": 0-100, "reason": "...", "type": "direct", "category": null}}
  ],
  "hasHiddenMenu": true or false,
  "contextClues": ["short notes on what you saw"]
}}

Use absolute URLs when you can. Return an empty list when nothing looks like a menu.
"""

MENU_LINKS_HUMAN = """
PAGE URL: {url}

PAGE STRUCTURE:
{page_structure}
"""

PDF_MENU_PARSING_PROMPT = """
You are extracting a restaurant menu from text that was pulled out of a PDF.
The text may contain layout artefacts, broken lines and stray page numbers.

Extract every food and drink item. For each item give:
- name: the dish or drink name only
- description: ingredients or description if present, otherwise ""
- price: the price exactly as written including the currency symbol, otherwise ""
- category: one of "appetizer", "main", "dessert", "beverage", "salad", "soup", "side", "other"

Also list the menu's section headings as categories and any restaurant details
you can see.

Return ONLY a JSON object, no commentary:
{{
  "menuItems": [
    {{"name": "...", "description": "...", "price": "...", "category": "main"}}
  ],
  "categories": ["..."],
  "restaurantInfo": {{"name": "...", "phone": "...", "website": "...", "address": "..."}}
}}
"""

PDF_MENU_PARSING_HUMAN = """
MENU TEXT (part {chunk_number} of {chunk_total}):
{menu_text}
"""
