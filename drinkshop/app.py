# module drinkshop.app
from drinkshop.app_setup.factory import create_app

# App globale
app = create_app()
