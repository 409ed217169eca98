"""Ошибки движка торгов"""


class BiddingError(Exception):
    """Базовая ошибка ставки. code стабилен и отдается клиенту как есть."""
    code = "bidding_error"
    default_message = "Не удалось выполнить операцию"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        """Структурированная ошибка для REST/бота"""
        return {"code": self.code, "message": self.message}


class InvalidAuction(BiddingError):
    code = "invalid_auction"
    default_message = "Аукцион не найден"


class AuctionNotLive(BiddingError):
    code = "auction_not_live"
    default_message = "Аукцион еще не начался"


class AuctionEnded(BiddingError):
    code = "auction_ended"
    default_message = "Аукцион завершен"


class Unauthorized(BiddingError):
    code = "unauthorized"
    default_message = "У вас нет доступа к этому аукциону"


class SellerCannotBid(BiddingError):
    code = "seller_cannot_bid"
    default_message = "Нельзя делать ставки на собственный лот"


class AlreadyHighestBidder(BiddingError):
    code = "already_highest_bidder"
    default_message = "Ваша ставка уже самая высокая"


class BidTooLow(BiddingError):
    code = "bid_too_low"
    default_message = "Сумма ставки слишком мала"

    def __init__(self, message: str = None, minimum=None):
        self.minimum = minimum
        super().__init__(message)


class InvalidAmount(BiddingError):
    """Сумма не число, не конечна или точнее копейки"""
    code = "invalid_amount"
    default_message = "Некорректная сумма ставки"


class BidExceedsLimit(BiddingError):
    code = "bid_exceeds_limit"
    default_message = "Ставка превышает допустимый максимум"


class BuyNowUnavailable(BiddingError):
    code = "buy_now_unavailable"
    default_message = "Покупка по фиксированной цене недоступна"


class StorageError(BiddingError):
    """Сбой записи. Транзакция откатывается целиком, ставку можно повторить."""
    code = "storage_error"
    default_message = "Не удалось сохранить ставку, попробуйте еще раз"
