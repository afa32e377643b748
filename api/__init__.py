SHOP_BACKENDS = {
    "ShopSQLAlchemyClient": "api.shop_sqlalchemy",
    "ShopLocalClient": "api.shop_local",
}
