from shared.events import CamelModel


class AddToCartRequest(CamelModel):
    user_id: int
    book_id: int
    quantity: int


class RemoveFromCartRequest(CamelModel):
    user_id: int
    book_id: int


class CartItemResponse(CamelModel):
    book_id: int
    quantity: int


class CartResponse(CamelModel):
    user_id: int
    items: list[CartItemResponse]
